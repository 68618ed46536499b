"""Tests for the canvas editing session: seeding, local edits and save / delete round trips."""

import asyncio

import pytest

from datetime import datetime, timezone

from conftest import BLOCK_ID, PROJECT_ID, make_plot
from schemas.plot import PlotStatus
from services import status_machine
from services.canvas_reconciler import CanvasSession, CanvasSessionRegistry
from services.errors import InvalidTransitionError, NotFoundError, TransportError, ValidationError


def open_session(store):
    return asyncio.run(CanvasSession.open(PROJECT_ID, store))


def add_priced_draft(session):
    draft_id = session.add_draft().affected_ids[0]
    session.update_field("price", 1_000_000)
    session.update_field("price_per_unit", 800)
    return draft_id


def sent_updates(store):
    return [item for _, updates in store.calls_to("bulk_update_plots") for item in updates]


class TestSeeding:

    def test_open_uses_first_block_and_loads_plots(self, store):
        session = open_session(store)

        assert session.default_block_id == BLOCK_ID
        assert sorted(session.nodes) == ["p1", "p2", "p3"]
        assert not any(n.is_new for n in session.nodes.values())

    def test_unplaced_plot_gets_fallback_position(self, store):
        position = open_session(store).nodes["p3"].position

        assert (position.x, position.y) == (50, 50)
        assert (position.width, position.height) == (120, 90)

    def test_missing_size_filled_in(self, store):
        position = open_session(store).nodes["p2"].position

        assert (position.x, position.y) == (200, 10)
        assert (position.width, position.height) == (120, 90)

    def test_refresh_keeps_drafts(self, store):
        session = open_session(store)
        draft_id = session.add_draft().affected_ids[0]
        store.plots["p4"] = make_plot(id="p4", plot_number="A-004")

        asyncio.run(session.refresh())

        assert draft_id in session.nodes
        assert "p4" in session.nodes
        assert len(session.nodes) == 5

    def test_dirty_position_survives_refresh(self, store):
        session = open_session(store)
        session.move_node("p1", 300, 310)

        asyncio.run(session.refresh())

        assert (session.nodes["p1"].position.x, session.nodes["p1"].position.y) == (300, 310)
        assert "p1" in session.dirty_ids

    def test_plot_removed_elsewhere_is_no_longer_dirty(self, store):
        session = open_session(store)
        session.move_node("p1", 300, 310)
        del store.plots["p1"]

        asyncio.run(session.refresh())

        assert "p1" not in session.nodes
        assert session.pending_moves == []


class TestDrafts:

    def test_add_draft(self, store):
        session = open_session(store)
        draft_id = session.add_draft().affected_ids[0]
        node = session.nodes[draft_id]

        assert draft_id.startswith("temp-")
        assert node.is_new
        assert node.data.plot_number == "NEW-1"
        assert node.data.block_id == BLOCK_ID
        assert (node.position.x, node.position.y) == (120, 120)
        assert session.selected_ids == {draft_id}

    def test_drafts_are_numbered_and_staggered(self, store):
        session = open_session(store)
        session.add_draft()
        second = session.nodes[session.add_draft().affected_ids[0]]

        assert second.data.plot_number == "NEW-2"
        assert (second.position.x, second.position.y) == (140, 140)

    def test_discard_drops_drafts_and_pending_moves(self, store):
        session = open_session(store)
        session.add_draft()
        session.add_draft()
        session.move_node("p1", 300, 300)

        session.discard_drafts()

        assert session.pending_creates == []
        assert session.dirty_ids == set()
        assert sorted(session.nodes) == ["p1", "p2", "p3"]

    def test_snapshot_counts(self, store):
        session = open_session(store)
        draft_id = session.add_draft().affected_ids[0]
        snapshot = session.snapshot()

        assert snapshot.pending_create_count == 1
        assert snapshot.selected_ids == [draft_id]
        assert snapshot.stats.total == 3


class TestDuplicate:

    def test_duplicate_selected_plot(self, store):
        session = open_session(store)
        session.select(["p1"])

        copy_id = session.duplicate_selected().affected_ids[0]
        copy = session.nodes[copy_id]

        assert copy.is_new
        assert copy.data.plot_number == "A-001-copy"
        assert (copy.position.x, copy.position.y) == (30, 30)
        assert session.selected_ids == {copy_id}
        assert session.nodes["p1"].data.plot_number == "A-001"

    def test_nothing_selected(self, store):
        session = open_session(store)
        result = session.duplicate_selected()

        assert result.success is False
        assert len(session.nodes) == 3

    def test_select_unknown_node(self, store):
        with pytest.raises(NotFoundError):
            open_session(store).select(["nope"])


class TestFieldEdits:

    def test_edit_marks_saved_plot_dirty(self, store):
        session = open_session(store)
        session.select(["p1"])
        session.update_field("price", 2_000_000)

        assert session.nodes["p1"].data.price == 2_000_000
        assert "p1" in session.dirty_ids

    def test_unknown_field(self, store):
        session = open_session(store)
        session.select(["p1"])

        with pytest.raises(ValidationError) as exc:
            session.update_field("project_id", "proj-2")
        assert exc.value.field == "project_id"

    def test_block_is_fixed_after_creation(self, store):
        session = open_session(store)
        session.select(["p1"])

        with pytest.raises(ValidationError):
            session.update_field("block_id", "blk-2")

    def test_invalid_value_leaves_every_node_untouched(self, store):
        session = open_session(store)
        session.select(["p1", "p2"])

        with pytest.raises(ValidationError):
            session.update_field("facing", "UP")

        assert session.nodes["p1"].data.facing.value == "NORTH"
        assert session.dirty_ids == set()

    def test_setting_the_stored_status_is_not_a_change(self, store):
        session = open_session(store)
        session.select(["p2"])
        session.update_field("status", "booked")

        assert session.dirty_ids == set()
        assert session.pending_moves == []

    def test_edit_undone_by_hand_is_not_a_change(self, store):
        session = open_session(store)
        session.select(["p2"])
        session.update_field("status", "sold")
        assert "p2" in session.dirty_ids

        session.update_field("status", "booked")

        assert session.dirty_ids == set()

    def test_moving_back_keeps_a_field_edit_dirty(self, store):
        session = open_session(store)
        session.select(["p1"])
        session.update_field("price", 2_000_000)
        session.move_node("p1", 40, 60)
        session.move_node("p1", 10, 10)

        assert "p1" in session.dirty_ids

    def test_nothing_selected(self, store):
        assert open_session(store).update_field("price", 10).success is False


class TestMoves:

    def test_move_back_to_stored_position_clears_dirty(self, store):
        session = open_session(store)
        session.move_node("p1", 40, 60)
        session.move_node("p1", 10, 10)

        assert session.dirty_ids == set()

    def test_move_marks_dirty(self, store):
        session = open_session(store)
        session.move_node("p1", 40, 60)

        assert [n.id for n in session.pending_moves] == ["p1"]

    def test_move_to_same_position_is_not_a_change(self, store):
        session = open_session(store)
        session.move_node("p1", 10, 10)

        assert session.dirty_ids == set()

    def test_moving_a_draft_is_not_tracked_as_a_move(self, store):
        session = open_session(store)
        draft_id = session.add_draft().affected_ids[0]
        session.move_node(draft_id, 500, 500)

        assert session.nodes[draft_id].position.x == 500
        assert session.pending_moves == []

    def test_resize(self, store):
        session = open_session(store)
        session.resize_node("p1", 200, 100, x=5)
        position = session.nodes["p1"].position

        assert (position.x, position.y, position.width, position.height) == (5, 10, 200, 100)
        assert "p1" in session.dirty_ids

    def test_resize_to_zero_rejected(self, store):
        with pytest.raises(ValidationError):
            open_session(store).resize_node("p1", 0, 100)

    def test_unknown_node(self, store):
        with pytest.raises(NotFoundError):
            open_session(store).move_node("nope", 1, 1)


class TestDelete:

    def test_draft_is_removed_without_store_calls(self, store):
        session = open_session(store)
        draft_id = session.add_draft().affected_ids[0]
        fetches = len(store.calls_to("list_plots"))

        outcome = asyncio.run(session.delete_selected())

        assert outcome.success
        assert outcome.removed_drafts == [draft_id]
        assert draft_id not in session.nodes
        assert store.calls_to("delete_plot") == []
        assert len(store.calls_to("list_plots")) == fetches

    def test_saved_plots_deleted_through_store(self, store):
        session = open_session(store)
        session.select(["p1", "p2"])

        outcome = asyncio.run(session.delete_selected())

        assert outcome.success
        assert sorted(outcome.deleted_ids) == ["p1", "p2"]
        assert sorted(session.nodes) == ["p3"]
        assert session.selected_ids == set()

    def test_one_failure_does_not_stop_the_others(self, store):
        store.failures["delete_plot:p2"] = TransportError("DELETE plots", "timeout")
        session = open_session(store)
        session.select(["p1", "p2"])

        outcome = asyncio.run(session.delete_selected())

        assert outcome.success is False
        assert outcome.deleted_ids == ["p1"]
        assert list(outcome.failures) == ["p2"]
        assert "p2" in session.nodes
        assert "p1" not in session.nodes

    def test_failed_refresh_is_reported(self, store):
        session = open_session(store)
        session.select(["p1"])
        store.failures["list_plots"] = TransportError("SELECT plots", "timeout")

        outcome = asyncio.run(session.delete_selected())

        assert outcome.success
        assert outcome.deleted_ids == ["p1"]
        assert "timeout" in outcome.refresh_error
        assert "p1" not in session.nodes
        assert "p1" not in store.plots

    def test_declined_confirmation(self, store):
        session = open_session(store)
        session.select(["p1"])

        outcome = asyncio.run(session.delete_selected(confirm=lambda count: False))

        assert outcome.success is False
        assert store.calls_to("delete_plot") == []
        assert "p1" in session.nodes

    def test_nothing_selected(self, store):
        outcome = asyncio.run(open_session(store).delete_selected())
        assert outcome.success is False


class TestSave:

    def test_nothing_to_save(self, store):
        session = open_session(store)
        outcome = asyncio.run(session.save())

        assert outcome.success
        assert outcome.nothing_to_save
        assert store.calls_to("bulk_create_plots") == []
        assert store.calls_to("bulk_update_plots") == []

    def test_move_sends_only_id_and_position(self, store):
        session = open_session(store)
        session.move_node("p1", 400, 250)

        outcome = asyncio.run(session.save())

        assert outcome.success
        assert store.calls_to("bulk_create_plots") == []
        [item] = sent_updates(store)
        assert set(item.model_dump(exclude_unset=True)) == {"id", "canvas_position"}
        assert item.canvas_position.x == 400
        assert session.dirty_ids == set()

    def test_edited_fields_ride_along_with_the_position(self, store):
        session = open_session(store)
        session.select(["p1"])
        session.update_field("price", 2_000_000)

        asyncio.run(session.save())

        [item] = sent_updates(store)
        assert set(item.model_dump(exclude_unset=True)) == {"id", "canvas_position", "price"}
        assert store.plots["p1"].price == 2_000_000

    def test_status_edit_sets_sale_date(self, store):
        session = open_session(store)
        session.select(["p1"])
        session.update_field("status", "sold")

        asyncio.run(session.save())

        [item] = sent_updates(store)
        assert item.status == PlotStatus.SOLD
        assert item.sold_date is not None
        assert store.plots["p1"].status == PlotStatus.SOLD

    def test_drafts_and_moves_saved_together(self, store):
        session = open_session(store)
        for _ in range(3):
            add_priced_draft(session)
        session.move_node("p1", 400, 250)

        outcome = asyncio.run(session.save())

        assert outcome.success
        assert outcome.created_count == 3
        assert outcome.updated.matched == 1

        dispatch = [e for e in store.events if e[1] in ("bulk_create_plots", "bulk_update_plots")]
        assert [kind for kind, _ in dispatch[:2]] == ["start", "start"]

        assert len(session.nodes) == 6
        assert not any(node_id.startswith("temp-") for node_id in session.nodes)
        assert not any(n.is_new for n in session.nodes.values())
        assert session.selected_ids == set()
        assert store.plots["p1"].canvas_position.x == 400

    def test_created_plots_keep_their_canvas_position(self, store):
        session = open_session(store)
        add_priced_draft(session)

        asyncio.run(session.save())

        [created] = store.calls_to("bulk_create_plots")[0][1]
        assert created.plot_number == "NEW-1"
        assert created.block_id == BLOCK_ID
        assert (created.canvas_position.x, created.canvas_position.width) == (120, 120)

    def test_invalid_draft_blocks_the_whole_save(self, store):
        session = open_session(store)
        draft_id = session.add_draft().affected_ids[0]
        session.move_node("p1", 400, 250)

        with pytest.raises(ValidationError) as exc:
            asyncio.run(session.save())

        assert f"{draft_id}.price" in exc.value.field_errors
        assert store.calls_to("bulk_create_plots") == []
        assert store.calls_to("bulk_update_plots") == []

    def test_failed_update_keeps_moves_pending(self, store):
        store.failures["bulk_update_plots"] = TransportError("BULK_UPDATE plots", "boom")
        session = open_session(store)
        add_priced_draft(session)
        session.move_node("p1", 400, 250)

        outcome = asyncio.run(session.save())

        assert outcome.success is False
        assert outcome.created_count == 1
        assert "boom" in outcome.update_error
        assert "p1" in session.dirty_ids
        assert session.nodes["p1"].position.x == 400
        assert session.pending_creates == []
        assert len(session.nodes) == 4


    def test_failed_create_keeps_drafts_while_moves_land(self, store):
        store.failures["bulk_create_plots"] = TransportError("BULK_INSERT plots", "boom")
        session = open_session(store)
        draft_id = add_priced_draft(session)
        session.move_node("p1", 400, 250)
        session.select([draft_id, "p1"])

        outcome = asyncio.run(session.save())

        assert outcome.success is False
        assert "boom" in outcome.create_error
        assert outcome.update_error is None
        assert outcome.updated.matched == 1
        assert session.nodes[draft_id].is_new
        assert [n.id for n in session.pending_creates] == [draft_id]
        assert draft_id.startswith("temp-")
        assert "p1" not in session.dirty_ids
        assert session.selected_ids == {draft_id, "p1"}
        assert store.plots["p1"].canvas_position.x == 400

    def test_message_counts_updated_plots(self, store):
        session = open_session(store)
        session.select(["p1"])
        session.update_field("price", 2_000_000)

        outcome = asyncio.run(session.save())

        assert outcome.message == "Canvas changes saved: 1 plot updated"


class TestStatusEdits:

    def test_same_status_edit_keeps_stored_dates(self, store):
        booked_on = datetime(2024, 1, 1, tzinfo=timezone.utc)
        store.plots["p2"] = store.plots["p2"].model_copy(update={"booking_date": booked_on})
        session = open_session(store)
        session.select(["p2"])
        session.update_field("status", "booked")
        session.move_node("p2", 300, 10)

        asyncio.run(session.save())

        [item] = sent_updates(store)
        assert set(item.model_dump(exclude_unset=True)) == {"id", "canvas_position"}
        assert store.plots["p2"].booking_date == booked_on

    def test_forbidden_transition_blocks_the_save(self, store, monkeypatch):
        monkeypatch.setitem(status_machine.TRANSITIONS, PlotStatus.SOLD, frozenset())
        session = open_session(store)
        session.select(["p3"])
        session.update_field("status", "available")

        with pytest.raises(InvalidTransitionError) as exc:
            asyncio.run(session.save())

        assert list(exc.value.field_errors) == ["p3.status"]
        assert store.calls_to("bulk_update_plots") == []
        assert "p3" in session.dirty_ids

    def test_transition_checked_against_stored_status(self, store, monkeypatch):
        monkeypatch.setitem(status_machine.TRANSITIONS, PlotStatus.SOLD, frozenset({PlotStatus.RESERVED}))
        session = open_session(store)
        session.select(["p3"])
        session.update_field("status", "available")
        session.update_field("status", "reserved")

        outcome = asyncio.run(session.save())

        assert outcome.success
        assert store.plots["p3"].status == PlotStatus.RESERVED

    def test_draft_created_as_sold_gets_a_sale_date(self, store):
        session = open_session(store)
        add_priced_draft(session)
        session.update_field("status", "sold")

        asyncio.run(session.save())

        [created] = store.calls_to("bulk_create_plots")[0][1]
        assert created.status == PlotStatus.SOLD
        assert created.sold_date is not None
        assert created.booking_date is None


class TestRegistry:

    def test_add_get_close(self, store):
        registry = CanvasSessionRegistry()
        session = open_session(store)
        session_id = registry.add(session)

        assert registry.get(session_id) is session
        assert len(registry) == 1
        assert registry.close(session_id) is True
        assert registry.close(session_id) is False

    def test_unknown_session(self):
        with pytest.raises(NotFoundError):
            CanvasSessionRegistry().get("nope")


class FakeClock:

    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestRegistryExpiry:

    def test_idle_session_is_dropped(self, store):
        clock = FakeClock()
        registry = CanvasSessionRegistry(ttl=60, clock=clock)
        session_id = registry.add(open_session(store))

        clock.now = 61

        with pytest.raises(NotFoundError):
            registry.get(session_id)
        assert len(registry) == 0

    def test_use_keeps_a_session_alive(self, store):
        clock = FakeClock()
        registry = CanvasSessionRegistry(ttl=60, clock=clock)
        session_id = registry.add(open_session(store))

        clock.now = 50
        registry.get(session_id)
        clock.now = 100

        assert registry.get(session_id) is not None

    def test_adding_drops_idle_sessions(self, store):
        clock = FakeClock()
        registry = CanvasSessionRegistry(ttl=60, clock=clock)
        stale = registry.add(open_session(store))

        clock.now = 120
        fresh = registry.add(open_session(store))

        assert len(registry) == 1
        assert registry.close(stale) is False
        assert registry.get(fresh) is not None

    def test_zero_ttl_never_expires(self, store):
        clock = FakeClock()
        registry = CanvasSessionRegistry(ttl=0, clock=clock)
        session_id = registry.add(open_session(store))

        clock.now = 10 ** 6

        assert registry.get(session_id) is not None
