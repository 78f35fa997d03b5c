"""Workflow instance engine.

Binds a definition to a target request, evaluates votes against the active
stage and persists the resulting transitions together with their audit
entries. The adapter for the request domain is invoked once, after the
terminal transition has been committed.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, List, Dict, Set, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from stageflow.core.errors import (
    ErrorKind,
    AdapterError,
    ConfigurationError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from stageflow.db.models import (
    AuditEntry,
    AuditEvent,
    InstanceStage,
    Vote,
    WorkflowInstance,
    WorkflowStage,
)
from .adapter import AdapterRegistry
from .audit import ApprovalAuditLog
from .definitions import WorkflowDefinitionStore
from .machine import Evaluation, QuorumStateMachine, StageTally
from .states import (
    InstanceStatus,
    InstanceTransition,
    QuorumPolicy,
    VoteDecision,
    is_terminal,
)

logger = logging.getLogger(__name__)


@dataclass
class VoteResult:
    """Outcome of ``WorkflowEngine.cast_vote``."""
    instance: WorkflowInstance
    vote: Vote
    status: InstanceStatus
    evaluated_stage: InstanceStage
    tally: StageTally
    moved_to_next_node: bool
    next_stage: Optional[InstanceStage] = None
    adapter_error: Optional[AdapterError] = None

    @property
    def vote_id(self) -> int:
        return self.vote.id

    @property
    def approved_count(self) -> int:
        return self.tally.approved_count

    @property
    def total_required(self) -> int:
        return self.tally.total_required

    @property
    def quorum_policy(self) -> QuorumPolicy:
        return self.tally.quorum_policy


@dataclass
class StageSummary:
    """Current stage of a pending instance with its approval progress."""
    stage: InstanceStage
    tally: StageTally


@dataclass
class History:
    """Read-only projection of an instance for display."""
    instance: WorkflowInstance
    status: InstanceStatus
    current_stage: Optional[StageSummary]
    votes: List[Vote] = field(default_factory=list)
    entries: List[AuditEntry] = field(default_factory=list)


@dataclass
class PendingApproval:
    """An instance waiting on a specific reviewer."""
    instance: WorkflowInstance
    stage: InstanceStage
    tally: StageTally
    workflow_name: str


def active_key(request_type: str, request_id: str) -> str:
    return f"{request_type}:{request_id}"


class WorkflowEngine:
    """
    State machine runtime for workflow instances.

    Handles:
    - Initializing instances against a target request
    - Casting votes and evaluating stage quorum
    - Finalizing the external request through its adapter
    - History and pending-work projections
    """

    def __init__(self, db: Session, adapters: AdapterRegistry):
        """
        Initialize the engine.

        Args:
            db: Database session
            adapters: Registry of approvable-request adapters by request type
        """
        self.db = db
        self.adapters = adapters
        self.definitions = WorkflowDefinitionStore(db)
        self.audit = ApprovalAuditLog(db)

    # ------------------------------------------------------------------
    # Initialize
    # ------------------------------------------------------------------

    def initialize(self, definition_id: int, request_type: str, request_id: str) -> WorkflowInstance:
        """
        Bind a workflow definition to a request.

        The stage sequence is snapshotted so later definition edits do not
        affect this instance. The caller commits.

        Raises:
            ConfigurationError: Unknown request type, or the definition is
                inactive, has no stages, or has a stage without reviewers
            NotFoundError: Definition or request does not exist
            StateConflictError: The request already has a pending instance
        """
        request_id = str(request_id)
        adapter = self.adapters.get(request_type)
        definition = self.definitions.get_definition(definition_id)

        if not definition.is_active:
            raise ConfigurationError(
                ErrorKind.DEFINITION_INACTIVE, f"Workflow '{definition.name}' is not active"
            )
        if not definition.stages:
            raise ConfigurationError(
                ErrorKind.EMPTY_WORKFLOW, f"Workflow '{definition.name}' has no nodes"
            )
        empty = [s.name for s in definition.stages if not s.reviewers]
        if empty:
            raise ConfigurationError(
                ErrorKind.STAGE_MISCONFIGURED,
                f"Workflow '{definition.name}' has nodes without reviewers: {', '.join(empty)}",
            )

        if not adapter.exists(request_id):
            raise NotFoundError(request_type, request_id)

        key = active_key(request_type, request_id)
        if self._has_active(key):
            raise self._duplicate_active(request_type, request_id)

        instance = WorkflowInstance(
            workflow_definition_id=definition.id,
            request_type=request_type,
            target_request_id=request_id,
            active_key=key,
            status=InstanceStatus.PENDING.value,
            current_position=0,
        )
        for position, stage in enumerate(sorted(definition.stages, key=lambda s: s.order)):
            instance.stages.append(InstanceStage(
                position=position,
                stage_id=stage.id,
                name=stage.name,
                order=stage.order,
                quorum_policy=stage.quorum_policy,
                reviewer_ids=sorted(stage.reviewer_ids),
            ))
        instance.current_stage_id = instance.stages[0].stage_id

        try:
            self.db.add(instance)
            self.db.flush()
        except IntegrityError:
            # Lost a race with a concurrent initialize for the same request
            self.db.rollback()
            raise self._duplicate_active(request_type, request_id)

        self.audit.append(instance, AuditEvent.INSTANCE_CREATED, stage=instance.stages[0])

        logger.info(
            "Initialized workflow %s for %s/%s as instance %s",
            definition.id, request_type, request_id, instance.id,
        )
        return instance

    # ------------------------------------------------------------------
    # Vote
    # ------------------------------------------------------------------

    def cast_vote(
        self,
        instance_id: int,
        reviewer_id: int,
        decision: VoteDecision,
        comments: Optional[str] = None,
    ) -> VoteResult:
        """
        Record a reviewer's decision on the instance's current stage.

        The instance row is locked for the whole evaluation, so concurrent
        votes on the same instance are serialized. This method commits: the
        vote and any transition are durable before the adapter is called.

        Raises:
            NotFoundError: Instance does not exist
            StateConflictError: Instance not pending, duplicate vote, or the
                reviewer's stage was already decided
            AuthorizationError: Reviewer not eligible for the current stage
            ValidationError: Unknown decision, or reject without comment
        """
        try:
            decision = VoteDecision(decision)
        except ValueError:
            raise ValidationError(
                ErrorKind.INVALID_DECISION, f"action must be APPROVE or REJECT, got {decision!r}"
            )
        instance = self._lock_instance(instance_id)

        status = InstanceStatus(instance.status)
        if is_terminal(status):
            raise StateConflictError(
                ErrorKind.INSTANCE_NOT_PENDING,
                f"Workflow is already {status.value} and accepts no more votes",
            )

        stage = instance.current_stage
        evaluation = self._machine(instance, stage).apply_vote(reviewer_id, decision, comments)

        vote = Vote(
            instance_id=instance.id,
            instance_stage_id=stage.id,
            stage_id=stage.stage_id,
            reviewer_id=reviewer_id,
            decision=decision.value,
            comments=comments.strip() if comments else None,
        )
        try:
            self.db.add(vote)
            self.db.flush()
        except IntegrityError:
            self.db.rollback()
            raise StateConflictError(
                ErrorKind.DUPLICATE_VOTE,
                f"User {reviewer_id} has already voted on this stage",
            )

        self.audit.append(instance, AuditEvent.VOTE_CAST, stage=stage, actor_id=reviewer_id, vote=vote)
        next_stage = self._apply_transition(instance, stage, evaluation, actor_id=reviewer_id, vote=vote)
        self.db.commit()

        adapter_error = None
        if is_terminal(evaluation.status):
            adapter_error = self._sync_outcome(instance)

        return VoteResult(
            instance=instance,
            vote=vote,
            status=evaluation.status,
            evaluated_stage=stage,
            tally=evaluation.tally,
            moved_to_next_node=evaluation.moved,
            next_stage=next_stage,
            adapter_error=adapter_error,
        )

    def retry_finalization(self, instance_id: int) -> Optional[AdapterError]:
        """
        Re-apply a terminal outcome whose adapter call failed.

        Returns None when the outcome is (now) synced, or the new adapter error.

        Raises:
            StateConflictError: The instance is still pending
        """
        instance = self._lock_instance(instance_id)
        if not is_terminal(InstanceStatus(instance.status)):
            raise StateConflictError(
                ErrorKind.INSTANCE_NOT_FINALIZED,
                f"Instance {instance_id} is still pending; nothing to finalize",
            )
        if instance.outcome_synced_at is not None:
            self.db.commit()
            return None
        return self._sync_outcome(instance)

    def reevaluate_stage(self, stage_id: int) -> List[WorkflowInstance]:
        """
        Re-check quorum for every pending instance sitting on a stage.

        Call after the stage's reviewer set changed. Removing the
        last reviewer who had not yet approved an ALL stage leaves nobody able
        to cast the deciding vote, so the instance is moved here instead. The
        move is audited without an actor. Commits.

        Returns:
            Instances that advanced or were finalized
        """
        instance_ids = [
            row.id
            for row in self.db.query(WorkflowInstance.id).filter(
                WorkflowInstance.current_stage_id == stage_id,
                WorkflowInstance.status == InstanceStatus.PENDING.value,
            )
        ]

        moved = []
        for instance_id in instance_ids:
            instance = self._lock_instance(instance_id)
            status = InstanceStatus(instance.status)
            if is_terminal(status) or instance.current_stage_id != stage_id:
                self.db.commit()
                continue

            stage = instance.current_stage
            evaluation = self._machine(instance, stage).evaluate_quorum()
            if not evaluation.moved:
                self.db.commit()
                continue

            self._apply_transition(instance, stage, evaluation)
            self.db.commit()
            if is_terminal(evaluation.status):
                self._sync_outcome(instance)
            moved.append(instance)

        if moved:
            logger.info("Reviewer change on node %s moved %d instance(s)", stage_id, len(moved))
        return moved

    # ------------------------------------------------------------------
    # Read projections
    # ------------------------------------------------------------------

    def get_instance(self, instance_id: int) -> WorkflowInstance:
        instance = self.db.query(WorkflowInstance).filter(WorkflowInstance.id == instance_id).first()
        if not instance:
            raise NotFoundError("Workflow instance", instance_id)
        return instance

    def get_active_or_latest(self, request_type: str, request_id: str) -> WorkflowInstance:
        """Return the pending instance of a request, or its most recent one."""
        request_id = str(request_id)
        instance = (
            self.db.query(WorkflowInstance)
            .filter(
                WorkflowInstance.request_type == request_type,
                WorkflowInstance.target_request_id == request_id,
            )
            .order_by(
                (WorkflowInstance.status == InstanceStatus.PENDING.value).desc(),
                WorkflowInstance.id.desc(),
            )
            .first()
        )
        if not instance:
            raise NotFoundError(f"Workflow for {request_type}", request_id)
        return instance

    def get_history(self, instance_id: int) -> History:
        """Status, current stage tally and ordered audit trail of an instance."""
        instance = self.get_instance(instance_id)
        status = InstanceStatus(instance.status)

        current = None
        stage = instance.current_stage
        if stage is not None and not is_terminal(status):
            current = StageSummary(stage=stage, tally=self.stage_tally(stage))

        return History(
            instance=instance,
            status=status,
            current_stage=current,
            votes=list(instance.votes),
            entries=self.audit.entries_for(instance.id),
        )

    def stage_tally(self, stage: InstanceStage) -> StageTally:
        machine = QuorumStateMachine(
            status=InstanceStatus.PENDING,
            position=stage.position,
            stage_count=len(stage.instance.stages),
            quorum_policy=QuorumPolicy(stage.quorum_policy),
            eligible_reviewers=self._eligible_reviewers(stage),
            votes=self._stage_votes(stage),
        )
        return machine.tally()

    def list_pending_for_reviewer(
        self,
        reviewer_id: int,
        *,
        request_type: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[PendingApproval], int]:
        """
        Pending instances whose current stage is waiting on ``reviewer_id``.

        Instances where the reviewer already voted on the current stage are
        excluded.

        Returns:
            Tuple of (page of pending approvals, total count)
        """
        query = (
            self.db.query(WorkflowInstance)
            .options(
                selectinload(WorkflowInstance.definition),
                selectinload(WorkflowInstance.stages)
                .selectinload(InstanceStage.source_stage)
                .selectinload(WorkflowStage.reviewers),
            )
            .filter(WorkflowInstance.status == InstanceStatus.PENDING.value)
        )
        if request_type:
            query = query.filter(WorkflowInstance.request_type == request_type)

        pending: List[PendingApproval] = []
        for instance in query.order_by(WorkflowInstance.created_at.asc(), WorkflowInstance.id.asc()):
            stage = instance.current_stage
            if stage is None or reviewer_id not in self._eligible_reviewers(stage):
                continue
            votes = self._stage_votes(stage)
            if reviewer_id in votes:
                continue
            pending.append(PendingApproval(
                instance=instance,
                stage=stage,
                tally=self.stage_tally(stage),
                workflow_name=instance.definition.name,
            ))

        return pending[offset:offset + limit], len(pending)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _lock_instance(self, instance_id: int) -> WorkflowInstance:
        instance = (
            self.db.query(WorkflowInstance)
            .filter(WorkflowInstance.id == instance_id)
            .with_for_update()
            .first()
        )
        if not instance:
            raise NotFoundError("Workflow instance", instance_id)
        return instance

    def _has_active(self, key: str) -> bool:
        return (
            self.db.query(WorkflowInstance.id).filter(WorkflowInstance.active_key == key).first()
            is not None
        )

    def _machine(self, instance: WorkflowInstance, stage: InstanceStage) -> QuorumStateMachine:
        return QuorumStateMachine(
            status=InstanceStatus(instance.status),
            position=instance.current_position,
            stage_count=len(instance.stages),
            quorum_policy=QuorumPolicy(stage.quorum_policy),
            eligible_reviewers=self._eligible_reviewers(stage),
            votes=self._stage_votes(stage),
            passed_stage_reviewers=self._passed_stage_reviewers(instance),
        )

    def _apply_transition(
        self,
        instance: WorkflowInstance,
        stage: InstanceStage,
        evaluation: Evaluation,
        *,
        actor_id: Optional[int] = None,
        vote: Optional[Vote] = None,
    ) -> Optional[InstanceStage]:
        """Persist an evaluated move and its audit entry. Returns the next stage on advance."""
        if evaluation.transition == InstanceTransition.ADVANCE:
            next_stage = instance.stages[evaluation.to_position]
            instance.current_position = evaluation.to_position
            instance.current_stage_id = next_stage.stage_id
            self.audit.append(
                instance, AuditEvent.STAGE_ADVANCED,
                stage=stage, to_stage=next_stage, actor_id=actor_id, vote=vote,
            )
            logger.info(
                "Instance %s advanced from '%s' to '%s'", instance.id, stage.name, next_stage.name
            )
            return next_stage

        if evaluation.moved:
            instance.status = evaluation.status.value
            instance.current_position = None
            instance.current_stage_id = None
            instance.active_key = None
            instance.finalized_at = datetime.utcnow()
            self.audit.append(
                instance, AuditEvent(evaluation.audit_event),
                stage=stage, actor_id=actor_id, vote=vote,
            )
            logger.info(
                "Instance %s finalized as %s at '%s' by reviewer %s",
                instance.id, evaluation.status.value, stage.name, actor_id,
            )
        return None

    @staticmethod
    def _eligible_reviewers(stage: InstanceStage) -> Set[int]:
        """Live reviewer set of the source stage, or the snapshot if it was deleted."""
        if stage.source_stage is not None:
            return stage.source_stage.reviewer_ids
        return set(stage.reviewer_ids or [])

    def _stage_votes(self, stage: InstanceStage) -> Dict[int, VoteDecision]:
        votes = self.db.query(Vote).filter(Vote.instance_stage_id == stage.id).all()
        return {v.reviewer_id: VoteDecision(v.decision) for v in votes}

    def _passed_stage_reviewers(self, instance: WorkflowInstance) -> Set[int]:
        reviewers: Set[int] = set()
        for stage in instance.stages[:instance.current_position]:
            reviewers |= self._eligible_reviewers(stage)
            reviewers |= set(stage.reviewer_ids or [])
        return reviewers

    def _decided_by(self, instance: WorkflowInstance) -> Optional[int]:
        """Reviewer whose vote finalized the instance, if a vote did."""
        entry = (
            self.db.query(AuditEntry)
            .filter(
                AuditEntry.instance_id == instance.id,
                AuditEntry.event.in_([AuditEvent.APPROVED.value, AuditEvent.REJECTED.value]),
            )
            .first()
        )
        return entry.actor_id if entry else None

    def _sync_outcome(self, instance: WorkflowInstance) -> Optional[AdapterError]:
        """
        Project a terminal status onto the external request via its adapter.

        The adapter runs while the instance row is locked, with the sync
        already claimed. A concurrent retry waits for the lock and then sees
        the outcome as synced, so a successful call happens at most once.
        """
        instance = self._lock_instance(instance.id)
        if instance.outcome_synced_at is not None:
            self.db.commit()
            return None

        outcome = InstanceStatus(instance.status)
        adapter = self.adapters.get(instance.request_type)
        decided_by = self._decided_by(instance)

        instance.outcome_synced_at = datetime.utcnow()
        instance.last_adapter_error = None
        self.db.flush()
        try:
            adapter.on_finalized(instance.target_request_id, outcome, decided_by=decided_by)
        except AdapterError as exc:
            error = exc
        except Exception as exc:
            logger.exception("Adapter for %s raised unexpectedly", instance.request_type)
            error = AdapterError(
                f"Adapter failed: {exc}",
                request_type=instance.request_type,
                request_id=instance.target_request_id,
            )
        else:
            self.db.commit()
            return None

        # Discard partial adapter writes and the claim; the terminal transition is already committed
        self.db.rollback()
        instance.last_adapter_error = error.message
        self.db.commit()
        logger.warning(
            "Instance %s is %s but %s/%s was not updated: %s",
            instance.id, outcome.value, instance.request_type, instance.target_request_id, error.message,
        )
        return error

    @staticmethod
    def _duplicate_active(request_type: str, request_id: str) -> StateConflictError:
        return StateConflictError(
            ErrorKind.DUPLICATE_ACTIVE_INSTANCE,
            f"{request_type}/{request_id} already has a workflow in progress",
        )
