"""Tests for the append-only approval audit log."""

import pytest

from stageflow.core.workflow import ApprovalAuditLog, QuorumPolicy, VoteDecision
from stageflow.db.models import AuditEvent, ImmutableAuditError

from tests.factories import create_linear_workflow


@pytest.fixture
def instance(db_session, workflow_engine):
    workflow = create_linear_workflow(db_session, [(QuorumPolicy.ANY, [1])])
    instance = workflow_engine.initialize(workflow.id, "tickets", "T-1")
    db_session.commit()
    return instance


class TestApprovalAuditLog:

    def test_sequence_is_per_instance(self, db_session, workflow_engine, instance):
        workflow = create_linear_workflow(db_session, [(QuorumPolicy.ANY, [1])])
        other = workflow_engine.initialize(workflow.id, "tickets", "T-2")
        log = ApprovalAuditLog(db_session)

        entry = log.append(instance, AuditEvent.VOTE_CAST, stage=instance.current_stage, actor_id=1)

        assert entry.sequence == 2
        assert log.entries_for(other.id)[0].sequence == 1

    def test_entry_copies_vote_details(self, db_session, workflow_engine, instance):
        workflow_engine.cast_vote(instance.id, 1, VoteDecision.APPROVE)

        vote_entry = ApprovalAuditLog(db_session).entries_for(instance.id)[1]

        assert vote_entry.event == "VOTE_CAST"
        assert vote_entry.decision == "APPROVE"
        assert vote_entry.vote_id is not None
        assert vote_entry.stage_name == "Stage 1"

    def test_entries_cannot_be_updated(self, db_session, instance):
        entry = ApprovalAuditLog(db_session).entries_for(instance.id)[0]
        entry.comments = "rewritten"

        with pytest.raises(ImmutableAuditError):
            db_session.flush()
        db_session.rollback()

    def test_entries_cannot_be_deleted(self, db_session, instance):
        entry = ApprovalAuditLog(db_session).entries_for(instance.id)[0]
        db_session.delete(entry)

        with pytest.raises(ImmutableAuditError):
            db_session.flush()
        db_session.rollback()
