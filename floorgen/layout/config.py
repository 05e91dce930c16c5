"""Generation request parameters and their validation.

The request is checked in full before the partition stage starts; an invalid
range is reported with a descriptive ConfigurationError and never clamped.
Seeds are always explicit inside the core: :func:`derive_seed` is the only
place a time-derived seed is produced and it is meant for the CLI / HTTP
boundary.
"""
from __future__ import annotations

import hashlib
import time
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional, Union

from .errors import ConfigurationError

CORRIDOR_WIDTHS = (3, 5)
SEED_MAX = 9223372036854775807  # signed 64-bit, matches the binary codec and SQLite INTEGER


@dataclass
class GenerationRequest:
    width: int = 40
    height: int = 40
    min_rooms: int = 8
    max_rooms: int = 20
    min_room_width: int = 3
    min_room_height: int = 3
    max_room_width: int = 12
    max_room_height: int = 12
    seed: Optional[int] = None
    corridor_margin: int = 1
    split_ratio_min: float = 0.35
    split_ratio_max: float = 0.65
    primary_corridor_width: int = 5
    secondary_corridor_width: int = 3
    core_room_ratio: float = 0.3
    redundancy_ratio: float = 0.15
    max_optimizer_iterations: int = 50
    snap_step: int = 2
    time_budget_ms: Optional[int] = 5000

    def validate(self) -> "GenerationRequest":
        if self.seed is None or isinstance(self.seed, bool) or not isinstance(self.seed, int):
            raise ConfigurationError("seed must be an explicit integer", field="seed")
        if not 0 <= self.seed <= SEED_MAX:
            raise ConfigurationError(f"seed must be within 0..{SEED_MAX}", field="seed")
        for name in (
            "width",
            "height",
            "min_room_width",
            "min_room_height",
            "max_room_width",
            "max_room_height",
            "snap_step",
        ):
            _require_positive_int(self, name)
        if self.width > 65535 or self.height > 65535:
            raise ConfigurationError("map dimensions must fit in 16 bits", field="width")
        _require_ordered(self, "min_rooms", "max_rooms")
        if self.min_rooms < 2:
            raise ConfigurationError("min_rooms must be at least 2", field="min_rooms")
        _require_ordered(self, "min_room_width", "max_room_width")
        _require_ordered(self, "min_room_height", "max_room_height")
        if not isinstance(self.corridor_margin, int) or self.corridor_margin < 1:
            raise ConfigurationError("corridor_margin must be an integer >= 1", field="corridor_margin")
        if not (0.0 < self.split_ratio_min <= self.split_ratio_max < 1.0):
            raise ConfigurationError(
                f"split ratio band must satisfy 0 < min <= max < 1 (got {self.split_ratio_min}..{self.split_ratio_max})",
                field="split_ratio_min",
            )
        for name in ("primary_corridor_width", "secondary_corridor_width"):
            if getattr(self, name) not in CORRIDOR_WIDTHS:
                raise ConfigurationError(f"{name} must be one of {CORRIDOR_WIDTHS}", field=name)
        if self.secondary_corridor_width > self.primary_corridor_width:
            raise ConfigurationError(
                "secondary_corridor_width cannot exceed primary_corridor_width", field="secondary_corridor_width"
            )
        if not 0.0 < self.core_room_ratio <= 1.0:
            raise ConfigurationError("core_room_ratio must be in (0, 1]", field="core_room_ratio")
        if not 0.0 <= self.redundancy_ratio <= 1.0:
            raise ConfigurationError("redundancy_ratio must be in [0, 1]", field="redundancy_ratio")
        if not isinstance(self.max_optimizer_iterations, int) or self.max_optimizer_iterations < 0:
            raise ConfigurationError(
                "max_optimizer_iterations must be a non-negative integer", field="max_optimizer_iterations"
            )
        if self.time_budget_ms is not None and self.time_budget_ms <= 0:
            raise ConfigurationError("time_budget_ms must be positive when set", field="time_budget_ms")
        return self

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GenerationRequest":
        known = set(cls.__dataclass_fields__)
        unknown = sorted(k for k in data if k not in known)
        if unknown:
            raise ConfigurationError(f"unknown parameter(s): {', '.join(unknown)}", field=unknown[0])
        return cls(**data)

    def cache_key(self) -> tuple:
        return tuple(sorted(self.to_dict().items()))


def _require_positive_int(req: GenerationRequest, name: str) -> None:
    value = getattr(req, name)
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigurationError(f"{name} must be a positive integer (got {value!r})", field=name)


def _require_ordered(req: GenerationRequest, lo: str, hi: str) -> None:
    lo_v, hi_v = getattr(req, lo), getattr(req, hi)
    if isinstance(lo_v, bool) or not isinstance(lo_v, int) or isinstance(hi_v, bool) or not isinstance(hi_v, int):
        raise ConfigurationError(f"{lo} and {hi} must be integers", field=lo)
    if lo_v > hi_v:
        raise ConfigurationError(f"{lo} ({lo_v}) must not exceed {hi} ({hi_v})", field=lo)


def derive_seed(value: Union[int, str, None] = None) -> int:
    """Convert a caller-provided seed (int, str or None) into a bounded 64-bit seed.

    None or blank strings produce a time-derived seed; digit strings are used
    verbatim; other strings are hashed so the same phrase always maps to the
    same layout.
    """
    if value is None:
        return time.time_ns() % SEED_MAX
    if isinstance(value, bool):
        raise ConfigurationError("seed must be an integer or string", field="seed")
    if isinstance(value, int):
        return value % SEED_MAX
    if isinstance(value, str):
        s = value.strip()
        if not s:
            return time.time_ns() % SEED_MAX
        if s.isdigit():
            return int(s) % SEED_MAX
        h = hashlib.sha256(s.encode("utf-8")).digest()
        return int.from_bytes(h[:8], "big") % SEED_MAX
    raise ConfigurationError("seed must be an integer or string", field="seed")


__all__ = ["GenerationRequest", "derive_seed", "CORRIDOR_WIDTHS", "SEED_MAX"]
