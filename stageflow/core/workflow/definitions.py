"""Workflow definition store.

Persists workflow templates and their ordered stages. Pure persistence:
no business evaluation happens here. Methods flush but never commit; the
caller owns the transaction.
"""

import logging
from typing import Optional, Dict, Any, List, Iterable, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from stageflow.core.errors import (
    ErrorKind,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from stageflow.db.models import (
    WorkflowDefinition,
    WorkflowStage,
    StageReviewer,
    WorkflowInstance,
)
from .states import InstanceStatus, QuorumPolicy

logger = logging.getLogger(__name__)

DEFINITION_FIELDS = {"name", "description", "is_active"}
STAGE_FIELDS = {"name", "description", "quorum_policy", "order"}


class WorkflowDefinitionStore:
    """
    CRUD over workflow definitions and their stages.

    Handles:
    - Creating, updating, activating and deleting definitions
    - Adding, editing, removing and reordering stages
    - Enforcing unique stage order within a definition
    """

    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Definitions
    # ------------------------------------------------------------------

    def create_definition(
        self,
        name: str,
        description: Optional[str] = None,
        *,
        is_active: bool = True,
    ) -> WorkflowDefinition:
        """Create an empty workflow definition."""
        definition = WorkflowDefinition(name=name, description=description, is_active=is_active)
        self.db.add(definition)
        self.db.flush()
        logger.info("Created workflow definition %s (%s)", definition.id, name)
        return definition

    def get_definition(self, definition_id: int) -> WorkflowDefinition:
        definition = (
            self.db.query(WorkflowDefinition)
            .options(selectinload(WorkflowDefinition.stages).selectinload(WorkflowStage.reviewers))
            .filter(WorkflowDefinition.id == definition_id)
            .first()
        )
        if not definition:
            raise NotFoundError("Workflow", definition_id)
        return definition

    def list_definitions(
        self,
        *,
        active: Optional[bool] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[WorkflowDefinition], int]:
        """List definitions, optionally filtered by active flag.

        Returns:
            Tuple of (definitions, total count before pagination)
        """
        query = self.db.query(WorkflowDefinition)
        if active is not None:
            query = query.filter(WorkflowDefinition.is_active == active)

        total = query.count()
        definitions = (
            query.order_by(WorkflowDefinition.created_at.desc(), WorkflowDefinition.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return definitions, total

    def update_definition(self, definition_id: int, **fields: Any) -> WorkflowDefinition:
        definition = self.get_definition(definition_id)
        for key, value in fields.items():
            if key not in DEFINITION_FIELDS:
                raise ValidationError(ErrorKind.UNKNOWN_FIELD, f"Unknown workflow field: {key}")
            setattr(definition, key, value)
        self.db.flush()
        return definition

    def set_active(self, definition_id: int, is_active: bool) -> WorkflowDefinition:
        return self.update_definition(definition_id, is_active=is_active)

    def delete_definition(self, definition_id: int) -> None:
        """
        Delete a definition and its stages.

        Raises:
            StateConflictError: Instances were bound to the definition; deactivate it instead
        """
        definition = self.get_definition(definition_id)
        bound = (
            self.db.query(func.count(WorkflowInstance.id))
            .filter(WorkflowInstance.workflow_definition_id == definition_id)
            .scalar()
        )
        if bound:
            raise StateConflictError(
                ErrorKind.DEFINITION_IN_USE,
                f"Workflow {definition_id} has {bound} instance(s); deactivate it instead",
            )
        self.db.delete(definition)
        self.db.flush()
        logger.info("Deleted workflow definition %s", definition_id)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def get_stage(self, stage_id: int) -> WorkflowStage:
        stage = self.db.query(WorkflowStage).filter(WorkflowStage.id == stage_id).first()
        if not stage:
            raise NotFoundError("Node", stage_id)
        return stage

    def list_stages(self, definition_id: int) -> List[WorkflowStage]:
        return list(self.get_definition(definition_id).stages)

    def add_stage(
        self,
        definition_id: int,
        name: str,
        quorum_policy: QuorumPolicy,
        order: int,
        *,
        description: Optional[str] = None,
        reviewer_ids: Optional[Iterable[int]] = None,
    ) -> WorkflowStage:
        """
        Append a stage to a definition.

        Args:
            definition_id: Owning definition
            name: Stage name
            quorum_policy: ALL or ANY
            order: Sort key, unique within the definition
            description: Optional description
            reviewer_ids: Optional initial reviewer set

        Raises:
            NotFoundError: Definition does not exist
            ValidationError: Order is not positive or already used
        """
        definition = self.get_definition(definition_id)
        self._validate_order(order)
        self._ensure_order_free(definition_id, order)

        stage = WorkflowStage(
            definition_id=definition.id,
            name=name,
            description=description,
            order=order,
            quorum_policy=self._policy(quorum_policy),
        )
        for reviewer_id in sorted(set(reviewer_ids or [])):
            stage.reviewers.append(StageReviewer(reviewer_id=reviewer_id))

        self.db.add(stage)
        self.db.flush()
        self.db.refresh(definition)
        logger.info("Added stage %s (%s) to workflow %s at order %s", stage.id, name, definition_id, order)
        return stage

    def update_stage(self, stage_id: int, **fields: Any) -> WorkflowStage:
        stage = self.get_stage(stage_id)
        for key, value in fields.items():
            if key not in STAGE_FIELDS:
                raise ValidationError(ErrorKind.UNKNOWN_FIELD, f"Unknown node field: {key}")
            if key == "order":
                self._validate_order(value)
                self._ensure_order_free(stage.definition_id, value, exclude_stage_id=stage.id)
            if key == "quorum_policy":
                value = self._policy(value)
            setattr(stage, key, value)
        self.db.flush()
        return stage

    def delete_stage(self, stage_id: int) -> None:
        """
        Remove a stage from its definition.

        Raises:
            StateConflictError: A pending instance is currently at this stage
        """
        stage = self.get_stage(stage_id)
        in_use = self.pending_at_stage(stage_id)
        if in_use:
            raise StateConflictError(
                ErrorKind.STAGE_IN_USE,
                f"Node {stage_id} is the current stage of {in_use} pending request(s)",
            )
        self.db.delete(stage)
        self.db.flush()
        logger.info("Deleted stage %s from workflow %s", stage_id, stage.definition_id)

    def pending_at_stage(self, stage_id: int) -> int:
        """Number of pending instances whose current stage is ``stage_id``."""
        return (
            self.db.query(func.count(WorkflowInstance.id))
            .filter(
                WorkflowInstance.current_stage_id == stage_id,
                WorkflowInstance.status == InstanceStatus.PENDING.value,
            )
            .scalar()
        )

    def reorder_stage(self, stage_id: int, new_order: int) -> WorkflowStage:
        return self.update_stage(stage_id, order=new_order)

    def reorder_stages(self, definition_id: int, orders: Dict[int, int]) -> List[WorkflowStage]:
        """
        Apply several order changes at once.

        The final arrangement is validated as a whole, so two stages may swap
        positions in a single call.
        """
        definition = self.get_definition(definition_id)
        stages_by_id = {s.id: s for s in definition.stages}

        for stage_id, order in orders.items():
            if stage_id not in stages_by_id:
                raise NotFoundError("Node", stage_id)
            self._validate_order(order)

        final = {s.id: orders.get(s.id, s.order) for s in definition.stages}
        if len(set(final.values())) != len(final):
            raise ValidationError(
                ErrorKind.DUPLICATE_ORDER,
                "Two nodes of the same workflow cannot share an order",
            )

        # Park moved stages on negative orders first so the unique constraint
        # never sees a transient collision.
        for stage_id in orders:
            stages_by_id[stage_id].order = -stage_id
        self.db.flush()
        for stage_id, order in orders.items():
            stages_by_id[stage_id].order = order
        self.db.flush()

        self.db.refresh(definition)
        return list(definition.stages)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _policy(value) -> str:
        try:
            return QuorumPolicy(value).value
        except ValueError:
            raise ValidationError(
                ErrorKind.INVALID_POLICY, f"approval_type must be ALL or ANY, got {value!r}"
            )

    @staticmethod
    def _validate_order(order: int) -> None:
        if order is None or order < 1:
            raise ValidationError(ErrorKind.INVALID_ORDER, "node_order must be a positive integer")

    def _ensure_order_free(
        self, definition_id: int, order: int, exclude_stage_id: Optional[int] = None
    ) -> None:
        query = self.db.query(WorkflowStage.id).filter(
            WorkflowStage.definition_id == definition_id,
            WorkflowStage.order == order,
        )
        if exclude_stage_id is not None:
            query = query.filter(WorkflowStage.id != exclude_stage_id)
        if query.first():
            raise ValidationError(
                ErrorKind.DUPLICATE_ORDER,
                f"Workflow {definition_id} already has a node at order {order}",
            )
