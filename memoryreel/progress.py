"""Ingestion progress as an explicit state machine.

Lifecycle: IDLE → EXTRACTING → ANALYZING → GENERATING → [GENERATING_COMIC] → SAVING → COMPLETE
ERROR is reachable from every non-terminal stage; ERROR → IDLE is the only
way back (explicit user retry). Stages the run does not need may be skipped
forward (e.g. manual uploads go EXTRACTING → SAVING), never backwards.
"""

import logging
from enum import Enum
from typing import Callable, FrozenSet, Optional, Set, Tuple

from memoryreel.errors import InvalidTransition
from memoryreel.models import ProgressSnapshot

logger = logging.getLogger(__name__)


class AnalysisStage(str, Enum):
    IDLE = "IDLE"
    EXTRACTING = "EXTRACTING"
    ANALYZING = "ANALYZING"
    GENERATING = "GENERATING"
    GENERATING_COMIC = "GENERATING_COMIC"
    SAVING = "SAVING"
    COMPLETE = "COMPLETE"
    ERROR = "ERROR"


TERMINAL_STAGES: FrozenSet[AnalysisStage] = frozenset({AnalysisStage.COMPLETE})

_TRANSITIONS: Set[Tuple[AnalysisStage, AnalysisStage]] = {
    (AnalysisStage.IDLE, AnalysisStage.EXTRACTING),
    (AnalysisStage.EXTRACTING, AnalysisStage.ANALYZING),
    (AnalysisStage.EXTRACTING, AnalysisStage.SAVING),  # magic disabled
    (AnalysisStage.ANALYZING, AnalysisStage.GENERATING),
    (AnalysisStage.ANALYZING, AnalysisStage.SAVING),  # degraded analysis
    (AnalysisStage.GENERATING, AnalysisStage.GENERATING_COMIC),
    (AnalysisStage.GENERATING, AnalysisStage.SAVING),
    (AnalysisStage.GENERATING_COMIC, AnalysisStage.SAVING),
    (AnalysisStage.SAVING, AnalysisStage.COMPLETE),
    (AnalysisStage.ERROR, AnalysisStage.IDLE),
}

# Labels shown by the upload dialog. Every stage must have one.
STAGE_LABELS: dict[AnalysisStage, str] = {
    AnalysisStage.IDLE: "Select File",
    AnalysisStage.EXTRACTING: "Processing Video...",
    AnalysisStage.ANALYZING: "Analyzing Frames...",
    AnalysisStage.GENERATING: "Designing Cover Art...",
    AnalysisStage.GENERATING_COMIC: "Inking Comic...",
    AnalysisStage.SAVING: "Saving to Cloud...",
    AnalysisStage.COMPLETE: "Magic Complete!",
    AnalysisStage.ERROR: "Something went wrong",
}

_missing = set(AnalysisStage) - set(STAGE_LABELS)
if _missing:
    raise RuntimeError(f"Stages without a label: {sorted(s.value for s in _missing)}")
del _missing


def can_transition(from_stage: AnalysisStage, to_stage: AnalysisStage) -> bool:
    """Check if a stage transition is legal."""
    if from_stage in TERMINAL_STAGES:
        return False
    if to_stage == AnalysisStage.ERROR:
        return from_stage != AnalysisStage.ERROR
    return (from_stage, to_stage) in _TRANSITIONS


def stage_label(stage: AnalysisStage) -> str:
    return STAGE_LABELS[stage]


class ProgressTracker:
    """Tracks one ingestion run and notifies an optional listener on each change."""

    def __init__(self, on_change: Optional[Callable[[ProgressSnapshot], None]] = None):
        self.stage = AnalysisStage.IDLE
        self.progress = 0
        self.error: Optional[str] = None
        self._on_change = on_change or (lambda snapshot: None)

    def snapshot(self) -> ProgressSnapshot:
        return ProgressSnapshot(stage=self.stage.value, progress=self.progress, error=self.error)

    def advance(self, stage: AnalysisStage, progress: Optional[int] = None) -> None:
        """Move to ``stage``; progress never decreases within a run."""
        if not can_transition(self.stage, stage):
            raise InvalidTransition(self.stage.value, stage.value)
        self.stage = stage
        if progress is not None:
            self.progress = max(self.progress, min(100, progress))
        if stage == AnalysisStage.COMPLETE:
            self.progress = 100
        logger.debug(f"Stage {stage.value} ({self.progress}%)")
        self._on_change(self.snapshot())

    def set_progress(self, progress: int) -> None:
        """Bump progress inside the current stage."""
        self.progress = max(self.progress, min(100, progress))
        self._on_change(self.snapshot())

    def fail(self, error: str) -> None:
        if not can_transition(self.stage, AnalysisStage.ERROR):
            raise InvalidTransition(self.stage.value, AnalysisStage.ERROR.value)
        self.stage = AnalysisStage.ERROR
        self.error = error
        self._on_change(self.snapshot())

    def reset(self) -> None:
        """ERROR → IDLE, starting a fresh run."""
        if not can_transition(self.stage, AnalysisStage.IDLE):
            raise InvalidTransition(self.stage.value, AnalysisStage.IDLE.value)
        self.stage = AnalysisStage.IDLE
        self.progress = 0
        self.error = None
        self._on_change(self.snapshot())
