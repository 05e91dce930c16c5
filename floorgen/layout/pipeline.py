"""Pipeline orchestration for layout generation.

A :class:`GenerationJob` runs the stages in a fixed order::

    validate -> partition -> classify -> connectivity -> optimize -> finalize

Each stage consumes the finished output of the previous one. Work is handed
out in bounded chunks through :meth:`GenerationJob.step` so a host loop can
interleave other work (one connectivity unit or one optimizer iteration per
call); :meth:`GenerationJob.run` simply loops until done while enforcing the
request's time budget. Cancellation is checked between chunks and discards
every partial result.

A single ``random.Random(seed)`` instance is threaded through the stages that
draw random numbers; nothing in here touches the module-level generator.
"""
from __future__ import annotations

import os
import random
import time
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, NamedTuple, Optional

from ..logging_utils import get_logger
from .classifier import ClassificationSettings, RoomClassifier
from .config import GenerationRequest
from .connectivity import ConnectivityBuilder
from .errors import ConvergenceWarning, GenerationCancelled, GenerationFailure
from .metrics import init_metrics
from .geometry import Cell
from .model import Layout
from .optimizer import LayoutOptimizer, OptimizerSettings, step as optimizer_step
from .partition import PartitionBuilder
from .validation import clearance_violations, validate_layout

log = get_logger("floorgen.pipeline")

STAGES = ("validate", "partition", "classify", "connectivity", "optimize", "finalize")


class Progress(NamedTuple):
    stage: str
    fraction: float
    done: bool = False


@dataclass
class GenerationResult:
    layout: Layout
    warnings: List[ConvergenceWarning] = field(default_factory=list)
    metrics: Dict[str, Any] = field(default_factory=dict)
    junctions: FrozenSet[Cell] = frozenset()


def _env_flag(name: str) -> Optional[bool]:
    if name not in os.environ:
        return None
    return os.environ.get(name, "").lower() not in {"0", "false", "no", ""}


class GenerationJob:
    def __init__(
        self,
        request: GenerationRequest,
        enable_metrics: Optional[bool] = None,
        classification: Optional[ClassificationSettings] = None,
        optimizer_settings: Optional[OptimizerSettings] = None,
    ):
        self.request = request
        if enable_metrics is None:
            env = _env_flag("FLOORGEN_ENABLE_GENERATION_METRICS")
            enable_metrics = True if env is None else env
        self.enable_metrics = enable_metrics
        self.classification = classification
        self.optimizer_settings = optimizer_settings
        self.metrics: Dict[str, Any] = init_metrics() if enable_metrics else {}
        self._phase_ms: Dict[str, float] = {}
        self._stage_index = 0
        self._cancelled = False
        self._result: Optional[GenerationResult] = None
        self._reset_partials()

    def _reset_partials(self) -> None:
        self._rng: Optional[random.Random] = None
        self._tree = None
        self._rooms = None
        self._connectivity: Optional[ConnectivityBuilder] = None
        self._corridors = None
        self._junctions = frozenset()
        self._optimizer: Optional[LayoutOptimizer] = None
        self._opt_ctx = None
        self._opt_state = None
        self._warnings: List[ConvergenceWarning] = []

    # -- public surface ---------------------------------------------------------------------------

    @property
    def stage(self) -> str:
        return STAGES[self._stage_index] if self._stage_index < len(STAGES) else "done"

    @property
    def done(self) -> bool:
        return self._result is not None

    @property
    def result(self) -> Optional[GenerationResult]:
        return self._result

    @property
    def progress(self) -> Progress:
        if self.done:
            return Progress("done", 1.0, True)
        within = 0.0
        if self.stage == "connectivity" and self._connectivity is not None:
            within = self._connectivity.progress()
        elif self.stage == "optimize" and self._opt_state is not None and self.request.max_optimizer_iterations:
            within = min(1.0, self._opt_state.iteration / self.request.max_optimizer_iterations)
        return Progress(self.stage, (self._stage_index + within) / len(STAGES))

    def cancel(self) -> None:
        """Request cancellation; honoured at the next chunk boundary."""
        self._cancelled = True

    def step(self) -> Progress:
        """Run one bounded chunk of work and report progress."""
        if self.done:
            return self.progress
        stage = self.stage
        if self._cancelled:
            self._reset_partials()
            log.info(event="generation_cancelled", stage=stage, seed=self.request.seed)
            raise GenerationCancelled(stage, seed=self.request.seed, params=self.request.to_dict())
        started = time.perf_counter()
        try:
            finished = getattr(self, f"_stage_{stage}")()
        except GenerationFailure as exc:
            exc.with_context(self.request.seed, self.request.to_dict())
            self._reset_partials()
            log.error(event="generation_failed", stage=exc.stage, seed=exc.seed, reason=exc.message)
            raise
        self._phase_ms[stage] = self._phase_ms.get(stage, 0.0) + (time.perf_counter() - started) * 1000
        if finished:
            self._stage_index += 1
        return self.progress

    def run(self) -> GenerationResult:
        budget = self.request.time_budget_ms
        start = time.perf_counter()
        while not self.done:
            self.step()
            elapsed = (time.perf_counter() - start) * 1000
            if budget is not None and elapsed > budget and not self.done:
                failure = GenerationFailure(
                    "budget",
                    f"time budget of {budget}ms exceeded during {self.stage} ({int(elapsed)}ms)",
                    seed=self.request.seed,
                    params=self.request.to_dict(),
                )
                self._reset_partials()
                log.error(event="generation_failed", stage="budget", seed=self.request.seed, reason=failure.message)
                raise failure
        return self._result

    # -- stages (each returns True once the stage is complete) ------------------------------------

    def _stage_validate(self) -> bool:
        self.request.validate()
        self._rng = random.Random(self.request.seed)
        return True

    def _stage_partition(self) -> bool:
        builder = PartitionBuilder(self.request, self._rng)
        self._tree = builder.build()
        self._rooms = self._tree.rooms()
        if self.enable_metrics:
            self.metrics["rooms_planned"] = self._tree.target_rooms
            self.metrics["partition_depth"] = self._tree.depth()
        return True

    def _stage_classify(self) -> bool:
        classifier = RoomClassifier(self.request.width, self.request.height, self.classification)
        self._rooms = classifier.classify(self._rooms, self._rng)
        return True

    def _stage_connectivity(self) -> bool:
        if self._connectivity is None:
            req = self.request
            self._connectivity = ConnectivityBuilder(
                self._rooms,
                req.width,
                req.height,
                primary_width=req.primary_corridor_width,
                secondary_width=req.secondary_corridor_width,
                core_ratio=req.core_room_ratio,
                redundancy_ratio=req.redundancy_ratio,
            )
            return False
        self._connectivity.step()
        if not self._connectivity.done:
            return False
        outcome = self._connectivity.result()
        self._rooms = outcome.rooms
        self._corridors = outcome.corridors
        self._junctions = frozenset(outcome.junctions)
        if self.enable_metrics:
            for key, value in outcome.metrics.items():
                self.metrics[key] = value
        return True

    def _stage_optimize(self) -> bool:
        req = self.request
        if self._optimizer is None:
            self._optimizer = LayoutOptimizer(req.width, req.height, req.snap_step, self.optimizer_settings)
            self._opt_ctx, self._opt_state = self._optimizer.start(self._rooms, self._corridors)
            return False
        state = self._opt_state
        if not state.converged and state.iteration < req.max_optimizer_iterations:
            self._opt_state = optimizer_step(state, self._opt_ctx)
            return False
        outcome = self._optimizer.finish(self._rooms, self._corridors, state, req.max_optimizer_iterations)
        self._rooms = outcome.rooms
        self._corridors = outcome.corridors
        self._warnings.extend(outcome.warnings)
        if self.enable_metrics:
            self.metrics["optimizer_iterations"] = state.iteration
            self.metrics["optimizer_converged"] = outcome.converged
            self.metrics["rooms_moved"] = len(outcome.moved)
            self.metrics["snaps_reverted"] = len(outcome.reverted)
        return True

    def _stage_finalize(self) -> bool:
        layout = Layout(
            width=self.request.width,
            height=self.request.height,
            seed=self.request.seed,
            rooms=tuple(sorted(self._rooms, key=lambda r: r.id)),
            corridors=tuple(self._corridors),
        )
        problems = validate_layout(layout, self._junctions)
        if problems:
            raise GenerationFailure("validation", "; ".join(problems[:5]))
        tight = clearance_violations(layout)
        if tight:
            log.warn(event="corridor_clearance", seed=layout.seed, violations=len(tight), first=tight[0])
        if self.enable_metrics:
            self.metrics["rooms_generated"] = len(layout.rooms)
            self.metrics["clearance_violations"] = len(tight)
            self.metrics["runtime_ms"] = round(sum(self._phase_ms.values()), 3)
            self.metrics["phase_ms"] = {k: int(v) for k, v in self._phase_ms.items()}
        self._result = GenerationResult(layout, list(self._warnings), dict(self.metrics), self._junctions)
        log.info(
            event="layout_generated",
            seed=layout.seed,
            rooms=len(layout.rooms),
            corridors=len(layout.corridors),
            warnings=len(self._warnings),
        )
        return True


def generate_layout(request: GenerationRequest, **kwargs) -> GenerationResult:
    return GenerationJob(request, **kwargs).run()


__all__ = ["GenerationJob", "GenerationResult", "Progress", "STAGES", "generate_layout"]
