"""Workflow instance states and transitions.

State Machine Diagram:

    ┌───────────────────┐
    │ PENDING(stage_i)  │ ← Initial state (lowest-order stage)
    └─────────┬─────────┘
              │
              ├──────────────── quorum met, more stages ──► PENDING(stage_i+1)
              │
              ├──────────────── quorum met, last stage ───► APPROVED
              │
              └──────────────── any REJECT vote ──────────► REJECTED

APPROVED and REJECTED are terminal; an instance never leaves them.
"""

from enum import Enum
from typing import Set, Dict, Optional, NamedTuple


class InstanceStatus(str, Enum):
    """Overall status of a workflow instance."""

    PENDING = "PENDING"      # Waiting on the current stage
    APPROVED = "APPROVED"    # Every stage passed
    REJECTED = "REJECTED"    # A reviewer rejected at some stage


class QuorumPolicy(str, Enum):
    """How many approvals a stage needs."""

    ALL = "ALL"  # Every assigned reviewer must approve
    ANY = "ANY"  # The first approval passes the stage


class VoteDecision(str, Enum):
    """A reviewer's decision on a stage."""

    APPROVE = "APPROVE"
    REJECT = "REJECT"


class InstanceTransition(str, Enum):
    """Outcomes of evaluating a vote that move the instance."""

    ADVANCE = "advance"      # PENDING(i) → PENDING(i+1)
    FINALIZE = "finalize"    # PENDING(last) → APPROVED
    REJECT = "reject"        # PENDING(i) → REJECTED


class TransitionRule(NamedTuple):
    """Defines a valid status transition."""
    from_status: InstanceStatus
    to_status: InstanceStatus
    transition: InstanceTransition
    audit_event: str


TRANSITION_RULES: list[TransitionRule] = [
    TransitionRule(InstanceStatus.PENDING, InstanceStatus.PENDING, InstanceTransition.ADVANCE, "STAGE_ADVANCED"),
    TransitionRule(InstanceStatus.PENDING, InstanceStatus.APPROVED, InstanceTransition.FINALIZE, "APPROVED"),
    TransitionRule(InstanceStatus.PENDING, InstanceStatus.REJECTED, InstanceTransition.REJECT, "REJECTED"),
]

# Build lookup tables for efficient access
VALID_TRANSITIONS: Dict[InstanceStatus, Set[InstanceTransition]] = {}
TRANSITION_TARGETS: Dict[tuple[InstanceStatus, InstanceTransition], TransitionRule] = {}

for rule in TRANSITION_RULES:
    VALID_TRANSITIONS.setdefault(rule.from_status, set()).add(rule.transition)
    TRANSITION_TARGETS[(rule.from_status, rule.transition)] = rule


TERMINAL_STATUSES: Set[InstanceStatus] = {
    InstanceStatus.APPROVED,
    InstanceStatus.REJECTED,
}


def can_transition(from_status: InstanceStatus, transition: InstanceTransition) -> bool:
    """Check if a transition is valid from the given status."""
    return transition in VALID_TRANSITIONS.get(from_status, set())


def get_transition_rule(
    from_status: InstanceStatus, transition: InstanceTransition
) -> Optional[TransitionRule]:
    """Get the transition rule for a status/transition combination."""
    return TRANSITION_TARGETS.get((from_status, transition))


def is_terminal(status: InstanceStatus) -> bool:
    return status in TERMINAL_STATUSES
