"""
SDR Agent - Funnel Progression State Machine

States are the seven registry stages, ordered by `order`. A conversation starts
at STAGE_1 and stops being the agent's business once it reaches the handoff
stage. Each turn the classifier proposes a stage; advance() decides where the
conversation actually goes:

    forced_handoff       should_handoff=True -> handoff stage, from anywhere
    regression_blocked   proposal below current -> stay
    clamped              proposal more than one step ahead -> current + 1
    accepted             otherwise

A proposal the registry doesn't know counts as order 1, so it always ends up
as regression_blocked or accepted-at-current.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from src.agents.stage_registry import (
    Stage, resolve_stage, stage_by_order, handoff_stage, is_handoff_or_beyond,
)

logger = logging.getLogger("sdr.agents.progression")

ACCEPTED = "accepted"
REGRESSION_BLOCKED = "regression_blocked"
CLAMPED = "clamped"
FORCED_HANDOFF = "forced_handoff"
FALLBACK = "fallback"

UNKNOWN_PROPOSAL_ORDER = 1


class TerminalStageError(ValueError):
    """Raised when asked to move a conversation that is already with a human."""
    pass


@dataclass(frozen=True)
class Transition:
    from_stage: Stage
    proposed: Optional[Stage]
    proposed_raw: Optional[str]
    to_stage: Stage
    rule: str
    should_handoff: bool = False

    @property
    def needs_human(self) -> bool:
        return self.should_handoff or is_handoff_or_beyond(self.to_stage.order)

    @property
    def changed(self) -> bool:
        return self.to_stage.order != self.from_stage.order

    def summary(self) -> str:
        """One-line description stored as the audit row's detected intent."""
        proposed = self.proposed.key.value if self.proposed else f"unknown:{self.proposed_raw}"
        if self.rule == ACCEPTED:
            return self.to_stage.key.value
        if self.rule == FALLBACK:
            return f"{self.to_stage.key.value} (fallback)"
        return f"{self.to_stage.key.value} ({self.rule}, proposed {proposed})"


def advance(current: Stage, proposed_raw: Optional[str], should_handoff: bool = False) -> Transition:
    """Apply the transition rules to one classifier proposal."""
    if is_handoff_or_beyond(current.order):
        raise TerminalStageError(
            f"Stage {current.key.value} is at or beyond handoff; the agent cannot move it"
        )

    proposed = resolve_stage(proposed_raw) if proposed_raw is not None else None
    proposed_order = proposed.order if proposed else UNKNOWN_PROPOSAL_ORDER

    if should_handoff:
        target, rule = handoff_stage(), FORCED_HANDOFF
    elif proposed_order < current.order:
        target, rule = current, REGRESSION_BLOCKED
    elif proposed_order > current.order + 1:
        target, rule = stage_by_order(current.order + 1), CLAMPED
    else:
        target, rule = stage_by_order(proposed_order), ACCEPTED

    transition = Transition(
        from_stage=current,
        proposed=proposed,
        proposed_raw=proposed_raw,
        to_stage=target,
        rule=rule,
        should_handoff=should_handoff,
    )
    if rule != ACCEPTED:
        logger.info("Stage %s: %s -> %s (proposed %s)", rule, current.key.value,
                    target.key.value, proposed_raw, extra={"rule": rule})
    return transition


def hold(current: Stage) -> Transition:
    """Transition used by the fallback path: stay where we are."""
    return Transition(from_stage=current, proposed=None, proposed_raw=None,
                      to_stage=current, rule=FALLBACK)
