"""Quorum state machine.

Evaluates a single vote against the current stage of an instance and
decides whether the instance waits, advances, finalizes or is rejected.
The machine is pure: it never touches the database. ``WorkflowEngine``
loads the inputs under a row lock and persists the outcome.
"""

from dataclasses import dataclass, field
from typing import Optional, Dict, Set

from stageflow.core.errors import (
    ErrorKind,
    AuthorizationError,
    StateConflictError,
    ValidationError,
)
from .states import (
    InstanceStatus,
    InstanceTransition,
    QuorumPolicy,
    VoteDecision,
    can_transition,
    get_transition_rule,
    is_terminal,
)


@dataclass(frozen=True)
class StageTally:
    """Approval progress of one stage."""
    approved_count: int
    total_required: int
    quorum_policy: QuorumPolicy

    @property
    def remaining(self) -> int:
        return max(self.total_required - self.approved_count, 0)

    @property
    def satisfied(self) -> bool:
        return self.total_required > 0 and self.approved_count >= self.total_required


@dataclass
class Evaluation:
    """Result of evaluating one vote."""
    status: InstanceStatus
    from_position: int
    to_position: Optional[int]
    tally: StageTally
    transition: Optional[InstanceTransition] = None
    audit_event: Optional[str] = None

    @property
    def moved(self) -> bool:
        return self.transition is not None


@dataclass
class QuorumStateMachine:
    """
    State machine for one instance positioned at one stage.

    Args:
        status: Current instance status
        position: Index of the current stage in the instance's stage sequence
        stage_count: Number of stages in the sequence
        quorum_policy: Policy of the current stage
        eligible_reviewers: Reviewers currently allowed to vote on the stage
        votes: Decisions already recorded on the stage, keyed by reviewer
        passed_stage_reviewers: Reviewers of stages this instance already passed
    """
    status: InstanceStatus
    position: int
    stage_count: int
    quorum_policy: QuorumPolicy
    eligible_reviewers: Set[int]
    votes: Dict[int, VoteDecision] = field(default_factory=dict)
    passed_stage_reviewers: Set[int] = field(default_factory=set)

    @property
    def is_terminal(self) -> bool:
        return is_terminal(self.status)

    @property
    def is_last_stage(self) -> bool:
        return self.position >= self.stage_count - 1

    def tally(self) -> StageTally:
        """Count approvals from reviewers that are still eligible."""
        approvals = sum(
            1
            for reviewer_id, decision in self.votes.items()
            if decision == VoteDecision.APPROVE and reviewer_id in self.eligible_reviewers
        )
        if self.quorum_policy == QuorumPolicy.ANY:
            return StageTally(min(approvals, 1), 1, self.quorum_policy)
        return StageTally(approvals, len(self.eligible_reviewers), self.quorum_policy)

    def check_vote(self, reviewer_id: int, decision: VoteDecision, comments: Optional[str]) -> None:
        """
        Validate a vote before it is recorded.

        Raises:
            StateConflictError: Instance is terminal, or the reviewer already voted
            AuthorizationError: Reviewer is not assigned to the current stage
            ValidationError: A reject carries no comment
        """
        if self.is_terminal:
            raise StateConflictError(
                ErrorKind.INSTANCE_NOT_PENDING,
                f"Workflow is already {self.status.value} and accepts no more votes",
            )

        if reviewer_id not in self.eligible_reviewers:
            if reviewer_id in self.passed_stage_reviewers:
                raise StateConflictError(
                    ErrorKind.STAGE_ALREADY_DECIDED,
                    "The stage you review on has already been decided for this request",
                )
            # Silent about which stage the request is at
            raise AuthorizationError(
                ErrorKind.NOT_ELIGIBLE_REVIEWER,
                f"User {reviewer_id} is not an eligible reviewer for this request at this time",
            )

        if reviewer_id in self.votes:
            raise StateConflictError(
                ErrorKind.DUPLICATE_VOTE,
                f"User {reviewer_id} has already voted on this stage",
            )

        if decision == VoteDecision.REJECT and not (comments and comments.strip()):
            raise ValidationError(
                ErrorKind.REJECT_REQUIRES_COMMENT,
                "A comment is required when rejecting",
            )

    def apply_vote(
        self,
        reviewer_id: int,
        decision: VoteDecision,
        comments: Optional[str] = None,
    ) -> Evaluation:
        """
        Record a vote and evaluate the stage quorum.

        Any REJECT finalizes the instance as REJECTED regardless of policy.
        An APPROVE advances the instance when the stage quorum is met:
        immediately under ANY, after every eligible reviewer approved under ALL.

        Returns:
            The evaluation, with ``transition`` set when the instance moved
        """
        self.check_vote(reviewer_id, decision, comments)
        self.votes[reviewer_id] = decision

        if decision == VoteDecision.REJECT:
            return self._transition(InstanceTransition.REJECT, self.position, self.tally())
        return self.evaluate_quorum()

    def evaluate_quorum(self) -> Evaluation:
        """
        Re-check the stage quorum without a new vote.

        Needed when the reviewer set shrinks: under ALL, the approvals already
        recorded may now cover every remaining reviewer.
        """
        from_position = self.position
        tally = self.tally()
        if self.is_terminal or not tally.satisfied:
            return Evaluation(self.status, from_position, from_position, tally)

        transition = InstanceTransition.FINALIZE if self.is_last_stage else InstanceTransition.ADVANCE
        return self._transition(transition, from_position, tally)

    def _transition(
        self, transition: InstanceTransition, from_position: int, tally: StageTally
    ) -> Evaluation:
        if not can_transition(self.status, transition):
            raise StateConflictError(
                ErrorKind.INSTANCE_NOT_PENDING,
                f"Cannot {transition.value} from {self.status.value}",
            )
        rule = get_transition_rule(self.status, transition)

        self.status = rule.to_status
        to_position: Optional[int] = None
        if transition == InstanceTransition.ADVANCE:
            self.position = from_position + 1
            to_position = self.position

        return Evaluation(
            status=self.status,
            from_position=from_position,
            to_position=to_position,
            tally=tally,
            transition=transition,
            audit_event=rule.audit_event,
        )
