from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

from .config import InstallerConfig
from .errors import CommandError, InstallInterruptedError, StageError

logger = logging.getLogger(__name__)


class StageStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class PipelineState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass(frozen=True)
class InstallCtx:
    cfg: InstallerConfig
    dry_run: bool = False
    cpu_count: Optional[int] = None

    @property
    def build_jobs(self) -> int:
        return self.cfg.build_jobs(self.cpu_count)


class Stage(Protocol):
    """A single ordered unit of the install."""

    stage_id: str
    description: str
    idempotent: bool

    def run(self, ctx: InstallCtx) -> None:
        ...


@dataclass
class PipelineResult:
    state: PipelineState
    statuses: Dict[str, StageStatus]
    ran_stages: List[str] = field(default_factory=list)


class Pipeline:
    """Fail-fast stage machine.

    A stage only starts once every stage before it succeeded; the first
    failure moves the pipeline to ABORTED and nothing after it runs.
    """

    def __init__(self, stages: Sequence[Stage]):
        ids = [s.stage_id for s in stages]
        if len(set(ids)) != len(ids):
            raise ValueError(f"Duplicate stage ids: {ids}")
        self.stages = list(stages)
        self.state = PipelineState.PENDING
        self.statuses: Dict[str, StageStatus] = {i: StageStatus.PENDING for i in ids}
        self.ran_stages: List[str] = []

    def result(self) -> PipelineResult:
        return PipelineResult(state=self.state, statuses=dict(self.statuses), ran_stages=list(self.ran_stages))

    def run(self, ctx: InstallCtx) -> PipelineResult:
        if self.state is not PipelineState.PENDING:
            raise RuntimeError(f"Pipeline already {self.state.value}")
        self.state = PipelineState.RUNNING

        total = len(self.stages)
        for n, stage in enumerate(self.stages, start=1):
            self.statuses[stage.stage_id] = StageStatus.RUNNING
            self.ran_stages.append(stage.stage_id)
            logger.info("Stage %d/%d %s: %s", n, total, stage.stage_id, stage.description)
            try:
                stage.run(ctx)
            except (KeyboardInterrupt, InstallInterruptedError):
                self.statuses[stage.stage_id] = StageStatus.FAILED
                self.state = PipelineState.ABORTED
                raise
            except Exception as e:
                self.statuses[stage.stage_id] = StageStatus.FAILED
                self.state = PipelineState.ABORTED
                raise StageError(stage.stage_id, e) from e
            self.statuses[stage.stage_id] = StageStatus.SUCCEEDED
            logger.info("Stage %s completed", stage.stage_id)

        self.state = PipelineState.COMPLETED
        return self.result()


def run_pipeline(*, ctx: InstallCtx, stages: Sequence[Stage]) -> PipelineResult:
    """Run stages in order, stopping at the first failure."""

    return Pipeline(stages).run(ctx)


def best_effort(description: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> bool:
    """Run an optional sub-action; a missing target or failed command only logs a warning."""

    try:
        result = fn(*args, **kwargs)
    except (OSError, CommandError) as e:
        logger.warning("Best-effort %s skipped: %s", description, e)
        return False
    return result is not False
