"""Error taxonomy for layout generation and decoding.

Every failure that reaches a caller carries enough context (stage, seed,
parameters) to reproduce it deterministically.
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class FloorgenError(Exception):
    """Base class for all generation and codec errors."""


class ConfigurationError(FloorgenError, ValueError):
    """Invalid or contradictory generation request; raised before any work starts."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field

    def to_dict(self) -> Dict[str, Any]:
        return {"error": str(self), "stage": "configuration", "field": self.field}


class GenerationFailure(FloorgenError):
    """A pipeline stage could not produce a valid structure."""

    def __init__(
        self,
        stage: str,
        message: str,
        seed: Optional[int] = None,
        params: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.stage = stage
        self.message = message
        self.seed = seed
        self.params = dict(params or {})

    def __str__(self) -> str:
        ctx = f"stage={self.stage}"
        if self.seed is not None:
            ctx += f" seed={self.seed}"
        return f"{self.message} ({ctx})"

    def with_context(self, seed: Optional[int], params: Optional[Dict[str, Any]]) -> "GenerationFailure":
        if self.seed is None:
            self.seed = seed
        if not self.params and params:
            self.params = dict(params)
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "stage": self.stage,
            "seed": self.seed,
            "params": self.params,
        }


class GenerationCancelled(GenerationFailure):
    """Raised from a job step after cancel(); partial results are discarded."""

    def __init__(self, stage: str, seed: Optional[int] = None, params: Optional[Dict[str, Any]] = None):
        super().__init__(stage, "generation cancelled", seed=seed, params=params)


class ConvergenceWarning(UserWarning):
    """The optimizer hit its iteration cap before converging (non-fatal)."""


class DecodeError(FloorgenError, ValueError):
    """Malformed or unsupported serialized layout data."""


__all__ = [
    "FloorgenError",
    "ConfigurationError",
    "GenerationFailure",
    "GenerationCancelled",
    "ConvergenceWarning",
    "DecodeError",
]
