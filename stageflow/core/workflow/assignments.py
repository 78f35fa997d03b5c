"""Node assignment manager.

Attaches and detaches reviewer identities to stages. Edits change who may
vote from now on; votes already cast are never touched.
"""

import logging
from typing import Iterable, List

from sqlalchemy.orm import Session

from stageflow.core.errors import ErrorKind, NotFoundError, StateConflictError
from stageflow.db.models import StageReviewer, WorkflowStage
from .definitions import WorkflowDefinitionStore

logger = logging.getLogger(__name__)


class NodeAssignmentManager:
    """Mutation layer over a stage's reviewer set."""

    def __init__(self, db: Session):
        self.db = db
        self.definitions = WorkflowDefinitionStore(db)

    def list_reviewers(self, stage_id: int) -> List[StageReviewer]:
        return list(self.definitions.get_stage(stage_id).reviewers)

    def set_reviewers(self, stage_id: int, reviewer_ids: Iterable[int]) -> WorkflowStage:
        """
        Replace the full reviewer set of a stage.

        Reviewers missing from ``reviewer_ids`` are detached, new ones are
        attached, and unchanged links are kept as-is.

        Raises:
            StateConflictError: The set would be emptied while requests wait on the stage
        """
        stage = self.definitions.get_stage(stage_id)
        wanted = set(reviewer_ids)
        if not wanted and self.definitions.pending_at_stage(stage_id):
            raise StateConflictError(
                ErrorKind.STAGE_IN_USE,
                f"Node {stage_id} cannot lose all reviewers while requests are pending on it",
            )
        current = {link.reviewer_id: link for link in stage.reviewers}

        for reviewer_id, link in current.items():
            if reviewer_id not in wanted:
                stage.reviewers.remove(link)
        for reviewer_id in sorted(wanted - current.keys()):
            stage.reviewers.append(StageReviewer(reviewer_id=reviewer_id))

        self.db.flush()
        logger.info("Node %s reviewers set to %s", stage_id, sorted(wanted))
        return stage

    def add_reviewers(self, stage_id: int, reviewer_ids: Iterable[int]) -> WorkflowStage:
        stage = self.definitions.get_stage(stage_id)
        return self.set_reviewers(stage_id, stage.reviewer_ids | set(reviewer_ids))

    def add_reviewer(self, stage_id: int, reviewer_id: int) -> WorkflowStage:
        return self.add_reviewers(stage_id, [reviewer_id])

    def remove_reviewer(self, stage_id: int, reviewer_id: int) -> WorkflowStage:
        stage = self.definitions.get_stage(stage_id)
        if reviewer_id not in stage.reviewer_ids:
            raise NotFoundError("Reviewer", reviewer_id)
        return self.set_reviewers(stage_id, stage.reviewer_ids - {reviewer_id})
