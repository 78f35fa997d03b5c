"""Tests for node reviewer assignments."""

import pytest

from stageflow.core.errors import NotFoundError
from stageflow.core.workflow import NodeAssignmentManager

from tests.factories import create_stage, create_workflow


@pytest.fixture
def manager(db_session):
    return NodeAssignmentManager(db_session)


@pytest.fixture
def stage(db_session):
    return create_stage(db_session, create_workflow(db_session), reviewer_ids=[1, 2])


class TestNodeAssignments:

    def test_set_reviewers_replaces_the_set(self, manager, stage, db_session):
        manager.set_reviewers(stage.id, [2, 3, 4])
        db_session.commit()

        assert stage.reviewer_ids == {2, 3, 4}

    def test_set_reviewers_keeps_unchanged_links(self, manager, stage, db_session):
        kept = next(link for link in stage.reviewers if link.reviewer_id == 2)

        manager.set_reviewers(stage.id, [2, 5])
        db_session.commit()

        assert any(link.id == kept.id for link in stage.reviewers)

    def test_add_reviewers_is_additive(self, manager, stage, db_session):
        manager.add_reviewers(stage.id, [2, 9])
        manager.add_reviewer(stage.id, 10)
        db_session.commit()

        assert stage.reviewer_ids == {1, 2, 9, 10}
        assert [link.reviewer_id for link in manager.list_reviewers(stage.id)] == [1, 2, 9, 10]

    def test_remove_reviewer(self, manager, stage, db_session):
        manager.remove_reviewer(stage.id, 1)
        db_session.commit()

        assert stage.reviewer_ids == {2}

    def test_remove_unassigned_reviewer(self, manager, stage):
        with pytest.raises(NotFoundError):
            manager.remove_reviewer(stage.id, 42)

    def test_missing_stage(self, manager):
        with pytest.raises(NotFoundError):
            manager.set_reviewers(999, [1])
