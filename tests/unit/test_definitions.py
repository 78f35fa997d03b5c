"""Tests for the workflow definition store."""

import pytest

from stageflow.core.errors import (
    ErrorKind,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from stageflow.core.workflow import QuorumPolicy, WorkflowDefinitionStore

from tests.factories import create_linear_workflow, create_stage, create_workflow


@pytest.fixture
def store(db_session):
    return WorkflowDefinitionStore(db_session)


class TestDefinitions:

    def test_create_and_get(self, store, db_session):
        definition = store.create_definition("Reprint approval", "Two-step check")
        db_session.commit()

        loaded = store.get_definition(definition.id)
        assert loaded.name == "Reprint approval"
        assert loaded.is_active is True
        assert loaded.stages == []

    def test_get_missing_definition(self, store):
        with pytest.raises(NotFoundError) as exc_info:
            store.get_definition(404)
        assert exc_info.value.kind == ErrorKind.NOT_FOUND

    def test_list_filters_and_paginates(self, store, db_session):
        for index in range(3):
            store.create_definition(f"Active {index}")
        store.create_definition("Retired", is_active=False)
        db_session.commit()

        active, total = store.list_definitions(active=True, limit=2, offset=0)
        assert total == 3
        assert len(active) == 2

        inactive, total = store.list_definitions(active=False)
        assert total == 1
        assert inactive[0].name == "Retired"

    def test_update_and_deactivate(self, store, db_session):
        definition = store.create_definition("Draft")
        store.update_definition(definition.id, name="Final", description="Ready")
        store.set_active(definition.id, False)
        db_session.commit()

        loaded = store.get_definition(definition.id)
        assert loaded.name == "Final"
        assert loaded.is_active is False

    def test_update_rejects_unknown_fields(self, store):
        definition = store.create_definition("Draft")
        with pytest.raises(ValidationError) as exc_info:
            store.update_definition(definition.id, owner="someone")
        assert exc_info.value.kind == ErrorKind.UNKNOWN_FIELD

    def test_delete_unused_definition(self, store, db_session):
        definition = create_linear_workflow(db_session, [(QuorumPolicy.ANY, [1])])
        db_session.commit()

        store.delete_definition(definition.id)
        db_session.commit()

        with pytest.raises(NotFoundError):
            store.get_definition(definition.id)

    def test_delete_definition_with_instances_is_refused(self, store, db_session, workflow_engine):
        definition = create_linear_workflow(db_session, [(QuorumPolicy.ANY, [1])])
        workflow_engine.initialize(definition.id, "tickets", "T-1")
        db_session.commit()

        with pytest.raises(StateConflictError) as exc_info:
            store.delete_definition(definition.id)
        assert exc_info.value.kind == ErrorKind.DEFINITION_IN_USE


class TestStages:

    def test_stages_are_sorted_by_order(self, store, db_session):
        definition = store.create_definition("Ordered")
        store.add_stage(definition.id, "Second", QuorumPolicy.ALL, 20, reviewer_ids=[1])
        store.add_stage(definition.id, "First", QuorumPolicy.ANY, 5, reviewer_ids=[2, 3])
        db_session.commit()

        stages = store.list_stages(definition.id)
        assert [s.name for s in stages] == ["First", "Second"]
        assert stages[0].quorum_policy == "ANY"
        assert stages[0].reviewer_ids == {2, 3}

    def test_duplicate_order_rejected(self, store, db_session):
        definition = store.create_definition("Dup")
        store.add_stage(definition.id, "A", QuorumPolicy.ALL, 1)

        with pytest.raises(ValidationError) as exc_info:
            store.add_stage(definition.id, "B", QuorumPolicy.ALL, 1)
        assert exc_info.value.kind == ErrorKind.DUPLICATE_ORDER

    @pytest.mark.parametrize("order", [0, -3])
    def test_non_positive_order_rejected(self, store, order):
        definition = store.create_definition("Bad order")
        with pytest.raises(ValidationError) as exc_info:
            store.add_stage(definition.id, "A", QuorumPolicy.ALL, order)
        assert exc_info.value.kind == ErrorKind.INVALID_ORDER

    def test_update_stage(self, store, db_session):
        definition = create_workflow(db_session)
        stage = create_stage(db_session, definition, order=1)

        store.update_stage(stage.id, name="Finance", quorum_policy="ANY", order=3)
        db_session.commit()

        loaded = store.get_stage(stage.id)
        assert loaded.name == "Finance"
        assert loaded.quorum_policy == "ANY"
        assert loaded.order == 3

    def test_update_stage_rejects_bad_policy(self, store, db_session):
        stage = create_stage(db_session, create_workflow(db_session))
        with pytest.raises(ValidationError) as exc_info:
            store.update_stage(stage.id, quorum_policy="MAJORITY")
        assert exc_info.value.kind == ErrorKind.INVALID_POLICY

    def test_update_stage_rejects_unknown_fields(self, store, db_session):
        stage = create_stage(db_session, create_workflow(db_session))
        with pytest.raises(ValidationError) as exc_info:
            store.update_stage(stage.id, colour="red")
        assert exc_info.value.kind == ErrorKind.UNKNOWN_FIELD

    def test_reorder_single_stage_into_taken_order(self, store, db_session):
        definition = create_workflow(db_session)
        create_stage(db_session, definition, order=1)
        second = create_stage(db_session, definition, order=2)

        with pytest.raises(ValidationError):
            store.reorder_stage(second.id, 1)

    def test_bulk_reorder_swaps_stages(self, store, db_session):
        definition = create_workflow(db_session)
        first = create_stage(db_session, definition, name="First", order=1)
        second = create_stage(db_session, definition, name="Second", order=2)

        stages = store.reorder_stages(definition.id, {first.id: 2, second.id: 1})
        db_session.commit()

        assert [s.name for s in stages] == ["Second", "First"]

    def test_bulk_reorder_validates_final_state(self, store, db_session):
        definition = create_workflow(db_session)
        first = create_stage(db_session, definition, order=1)
        create_stage(db_session, definition, order=2)

        with pytest.raises(ValidationError) as exc_info:
            store.reorder_stages(definition.id, {first.id: 2})
        assert exc_info.value.kind == ErrorKind.DUPLICATE_ORDER

    def test_bulk_reorder_rejects_foreign_stage(self, store, db_session):
        definition = create_workflow(db_session)
        other = create_stage(db_session, create_workflow(db_session), order=1)

        with pytest.raises(NotFoundError):
            store.reorder_stages(definition.id, {other.id: 5})

    def test_delete_stage(self, store, db_session):
        definition = create_workflow(db_session)
        stage = create_stage(db_session, definition, reviewer_ids=[1, 2])
        db_session.commit()

        store.delete_stage(stage.id)
        db_session.commit()

        assert store.list_stages(definition.id) == []

    def test_delete_current_stage_of_pending_instance_refused(self, store, db_session, workflow_engine):
        definition = create_linear_workflow(db_session, [(QuorumPolicy.ALL, [1]), (QuorumPolicy.ALL, [2])])
        workflow_engine.initialize(definition.id, "tickets", "T-1")
        db_session.commit()
        first, second = definition.stages

        with pytest.raises(StateConflictError) as exc_info:
            store.delete_stage(first.id)
        assert exc_info.value.kind == ErrorKind.STAGE_IN_USE

        # A later stage is not current, so it can go
        store.delete_stage(second.id)
