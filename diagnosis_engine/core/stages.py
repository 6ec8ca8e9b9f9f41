"""Diagnostic stage definitions and the stage-advance state machine.

Stages:  strategy → structure → performance → compensation → talent

Transitions only move one step forward. ``talent`` is terminal. Whether a
stage's insight is good enough to move on is the caller's decision; the
controller only enforces legal transitions.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from diagnosis_engine.core.exceptions import NoNextStageError, StageConflictError
from diagnosis_engine.core.logging import get_logger

if TYPE_CHECKING:
    from diagnosis_engine.db.sessions import SessionStore

logger = get_logger(__name__)


# =============================================================================
# Stage definitions
# =============================================================================


class Stage(str, Enum):
    STRATEGY = "strategy"
    STRUCTURE = "structure"
    PERFORMANCE = "performance"
    COMPENSATION = "compensation"
    TALENT = "talent"


STAGES: list[Stage] = [
    Stage.STRATEGY,
    Stage.STRUCTURE,
    Stage.PERFORMANCE,
    Stage.COMPENSATION,
    Stage.TALENT,
]

STAGE_LABELS: dict[Stage, str] = {
    Stage.STRATEGY: "Strategy",
    Stage.STRUCTURE: "Organizational Structure",
    Stage.PERFORMANCE: "Performance Management",
    Stage.COMPENSATION: "Compensation & Incentives",
    Stage.TALENT: "Talent Development",
}

# Localized labels used in prompts so the model sees the dimension in both languages
STAGE_LABELS_ZH: dict[Stage, str] = {
    Stage.STRATEGY: "战略",
    Stage.STRUCTURE: "组织结构",
    Stage.PERFORMANCE: "绩效管理",
    Stage.COMPENSATION: "薪酬激励",
    Stage.TALENT: "人才发展",
}


def parse_stage(value: str | Stage) -> Stage | None:
    """Return the Stage for a raw value, or None if it is not one of the five."""
    if isinstance(value, Stage):
        return value
    try:
        return Stage(value)
    except ValueError:
        return None


def next_stage(current: str | Stage) -> Stage:
    """Return the stage after ``current``.

    Raises NoNextStageError for the terminal stage or an unrecognized value.
    """
    stage = parse_stage(current)
    if stage is None:
        raise NoNextStageError(f"Unknown stage: {current}")

    idx = STAGES.index(stage)
    if idx == len(STAGES) - 1:
        raise NoNextStageError(f"{STAGE_LABELS[stage]} is the final stage")

    return STAGES[idx + 1]


# =============================================================================
# Controller
# =============================================================================


class StageController:
    """Advances sessions one stage at a time."""

    def __init__(self, sessions: SessionStore):
        self._sessions = sessions

    async def advance(self, session_id: str, owner_id: str | None = None) -> Stage:
        """Move a session to the next stage.

        The write is conditional on the stage that was read, so two concurrent
        advances cannot both succeed or skip a stage.

        Raises:
            NotFoundError: Session does not exist
            NoNextStageError: Session is at the terminal or an unknown stage
            StageConflictError: Session stage changed between read and write
        """
        session = await self._sessions.get_session(session_id, owner_id=owner_id)
        current = session.current_stage
        target = next_stage(current)

        updated = await self._sessions.update_stage(session_id, expected=current, new=target)
        if not updated:
            raise StageConflictError(
                f"Session {session_id} is no longer at stage {current}; advance not applied"
            )

        logger.info(
            f"Advanced session {session_id}: {current} → {target.value}",
            extra={"session_id": session_id, "stage": target.value},
        )
        return target
