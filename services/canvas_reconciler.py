"""
Canvas layout reconciler
✅ Owns one editing session's working set: nodes, selection, dirty ids
✅ Seeding from the store keeps local drafts (non-destructive merge)
✅ Save diffs the working set into one bulk create + one bulk update, run together
✅ Temporary draft ids never reach the store; a reseed brings the real ids
"""
import asyncio
import time
import uuid
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Set

from pydantic import ValidationError as PydanticValidationError

from config.settings import CANVAS_FETCH_LIMIT, CANVAS_SESSION_TTL, MAX_PAGE_LIMIT
from schemas.canvas import (
    ActionResult,
    CanvasNode,
    CanvasSnapshot,
    DeleteOutcome,
    EDITABLE_FIELDS,
    PlotNodeData,
    SaveOutcome,
)
from schemas.plot import (
    AreaUnit,
    BulkPlotUpdate,
    CanvasPosition,
    Facing,
    Plot,
    PlotCreate,
    PlotFilters,
    PlotStatus,
    PlotType,
)
from services.errors import NotFoundError, PlotInventoryError, TransportError, ValidationError, parse_model
from services.logger import logger
from services.plot_store import PlotStore
from services.stats import aggregate
from services.status_machine import check_transition, status_update_for, status_update_payload, with_status_fields

DEFAULT_NODE_WIDTH = 120
DEFAULT_NODE_HEIGHT = 90
DRAFT_ORIGIN = 100
DRAFT_STEP = 20
DUPLICATE_OFFSET = 20
COPY_SUFFIX = "-copy"
TEMP_ID_PREFIX = "temp-"

DRAFT_TEMPLATE = {
    "area": 1200,
    "area_unit": AreaUnit.SQ_FT,
    "price": 0,
    "price_per_unit": 0,
    "facing": Facing.NORTH,
    "plot_type": PlotType.REGULAR,
    "status": PlotStatus.AVAILABLE,
}


def fallback_position(area: float) -> CanvasPosition:
    """Deterministic spot for a plot that was never placed on the canvas."""
    return CanvasPosition(
        x=(area % 400) + 50,
        y=(area % 300) + 50,
        width=DEFAULT_NODE_WIDTH,
        height=DEFAULT_NODE_HEIGHT,
    )


def with_default_size(position: CanvasPosition) -> CanvasPosition:
    return position.model_copy(update={
        "width": position.width or DEFAULT_NODE_WIDTH,
        "height": position.height or DEFAULT_NODE_HEIGHT,
    })


def node_from_plot(plot: Plot) -> CanvasNode:
    if plot.canvas_position:
        position = with_default_size(plot.canvas_position)
    else:
        position = fallback_position(plot.area)
    return CanvasNode(id=plot.id, data=PlotNodeData.from_plot(plot), position=position, is_new=False)


def _plural(count: int, word: str = "plot") -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


class CanvasSession:
    """
    Editable working set for one project's layout.

    Created per editing session and thrown away when the session ends.
    All mutation happens on one event loop; network calls are the only awaits.
    """

    def __init__(self, project_id: str, store: PlotStore,
                 default_block_id: Optional[str] = None,
                 fetch_limit: int = CANVAS_FETCH_LIMIT):
        self.project_id = project_id
        self.default_block_id = default_block_id
        self.fetch_limit = max(1, min(fetch_limit, MAX_PAGE_LIMIT))
        self._store = store

        self.nodes: Dict[str, CanvasNode] = {}
        self.selected_ids: Set[str] = set()
        self.dirty_ids: Set[str] = set()
        # fields edited locally on persisted plots, per node id
        self._edited_fields: Dict[str, Set[str]] = {}
        # nodes as last fetched from the store, per plot id
        self._persisted: Dict[str, CanvasNode] = {}

    @classmethod
    async def open(cls, project_id: str, store: PlotStore,
                   default_block_id: Optional[str] = None, **kwargs) -> "CanvasSession":
        """Build a session, pick the project's first block for drafts, and seed it."""
        session = cls(project_id, store, default_block_id=default_block_id, **kwargs)
        if session.default_block_id is None:
            blocks = await store.list_blocks_by_project(project_id)
            if blocks:
                session.default_block_id = blocks[0].id
        await session.refresh()
        return session

    # ==================== Views ====================

    def get_node(self, node_id: str) -> CanvasNode:
        try:
            return self.nodes[node_id]
        except KeyError:
            raise NotFoundError("Canvas node", node_id) from None

    @property
    def pending_creates(self) -> List[CanvasNode]:
        return [n for n in self.nodes.values() if n.is_new]

    @property
    def pending_moves(self) -> List[CanvasNode]:
        return [n for n in self.nodes.values() if not n.is_new and n.id in self.dirty_ids]

    def _selected_nodes(self) -> List[CanvasNode]:
        return [n for n in self.nodes.values() if n.id in self.selected_ids]

    def snapshot(self) -> CanvasSnapshot:
        return CanvasSnapshot(
            project_id=self.project_id,
            nodes=list(self.nodes.values()),
            selected_ids=[n.id for n in self._selected_nodes()],
            dirty_ids=sorted(self.dirty_ids),
            pending_create_count=len(self.pending_creates),
            pending_move_count=len(self.pending_moves),
            stats=aggregate(n.data for n in self.nodes.values() if not n.is_new),
        )

    # ==================== Seeding ====================

    def seed(self, plots: Iterable[Plot]) -> None:
        """
        Replace every persisted node with the fetched plots, keeping drafts.

        Nodes that are still dirty keep their local position and locally
        edited fields on top of the fetched values; dirty ids whose plot is
        gone are dropped.
        """
        previous = self.nodes
        drafts = [n for n in previous.values() if n.is_new]
        fetched = {plot.id: node_from_plot(plot) for plot in plots}

        fresh: Dict[str, CanvasNode] = {}
        for node_id, node in fetched.items():
            local = previous.get(node_id)
            if local is not None and node_id in self.dirty_ids:
                node = self._carry_local_edits(local, node)
            fresh[node_id] = node

        for draft in drafts:
            fresh[draft.id] = draft

        self.nodes = fresh
        self.dirty_ids = {i for i in self.dirty_ids if i in fresh}
        self.selected_ids = {i for i in self.selected_ids if i in fresh}
        self._persisted = fetched
        self._edited_fields = {i: f for i, f in self._edited_fields.items() if i in self.dirty_ids}
        for node_id in list(self.dirty_ids):
            self._sync_dirty(node_id)

    def _sync_dirty(self, node_id: str) -> None:
        """A saved plot is dirty while its position or an edited field differs from the stored plot."""
        stored = self._persisted.get(node_id)
        if stored is None:
            return

        node = self.nodes[node_id]
        edited = {
            f for f in self._edited_fields.get(node_id, ())
            if getattr(node.data, f) != getattr(stored.data, f)
        }
        if edited:
            self._edited_fields[node_id] = edited
        else:
            self._edited_fields.pop(node_id, None)

        if edited or node.position != stored.position:
            self.dirty_ids.add(node_id)
        else:
            self.dirty_ids.discard(node_id)

    def _carry_local_edits(self, local: CanvasNode, fetched: CanvasNode) -> CanvasNode:
        edited = self._edited_fields.get(local.id, set())
        data = fetched.data.model_copy(update={f: getattr(local.data, f) for f in edited})
        return fetched.model_copy(update={"data": data, "position": local.position})

    async def _fetch_all_plots(self) -> List[Plot]:
        plots: List[Plot] = []
        page = 1
        while True:
            result = await self._store.list_plots(
                self.project_id, PlotFilters(page=page, limit=self.fetch_limit)
            )
            plots.extend(result.plots)
            if not result.plots or page >= result.pagination.total_pages:
                return plots
            page += 1

    async def refresh(self) -> None:
        """Re-fetch the project's plots and reseed."""
        plots = await self._fetch_all_plots()
        self.seed(plots)
        logger.debug(f"Canvas {self.project_id} seeded: {len(plots)} plots, {len(self.pending_creates)} drafts kept")

    # ==================== Selection ====================

    def select(self, node_ids: Iterable[str]) -> ActionResult:
        ids = list(node_ids)
        for node_id in ids:
            self.get_node(node_id)
        self.selected_ids = set(ids)
        return ActionResult(success=True, message=f"{_plural(len(ids))} selected", affected_ids=ids)

    def clear_selection(self) -> None:
        self.selected_ids.clear()

    # ==================== Local edits ====================

    def _new_temp_id(self) -> str:
        return f"{TEMP_ID_PREFIX}{uuid.uuid4().hex}"

    def add_draft(self) -> ActionResult:
        """Append an unsaved plot from the template and make it the selection."""
        next_index = len(self.pending_creates) + 1
        offset = DRAFT_ORIGIN + next_index * DRAFT_STEP

        node = CanvasNode(
            id=self._new_temp_id(),
            is_new=True,
            data=PlotNodeData(
                plot_number=f"NEW-{next_index}",
                block_id=self.default_block_id,
                **DRAFT_TEMPLATE,
            ),
            position=CanvasPosition(x=offset, y=offset, width=DEFAULT_NODE_WIDTH, height=DEFAULT_NODE_HEIGHT),
        )
        self.nodes[node.id] = node
        self.selected_ids = {node.id}
        return ActionResult(success=True, message="Draft plot added to canvas", affected_ids=[node.id])

    def duplicate_selected(self) -> ActionResult:
        """Copy every selected node into a new draft, offset from its source."""
        sources = self._selected_nodes()
        if not sources:
            return ActionResult(success=False, message="Select a plot to duplicate")

        copies = []
        for src in sources:
            copies.append(CanvasNode(
                id=self._new_temp_id(),
                is_new=True,
                data=src.data.model_copy(
                    update={"plot_number": f"{src.data.plot_number}{COPY_SUFFIX}"}, deep=True
                ),
                position=src.position.model_copy(update={
                    "x": src.position.x + DUPLICATE_OFFSET,
                    "y": src.position.y + DUPLICATE_OFFSET,
                }),
            ))

        for copy in copies:
            self.nodes[copy.id] = copy
        self.selected_ids = {c.id for c in copies}
        return ActionResult(
            success=True,
            message=f"Duplicated {_plural(len(copies))}",
            affected_ids=[c.id for c in copies],
        )

    def update_field(self, key: str, value) -> ActionResult:
        """
        Set one field on every selected node.

        Persisted nodes whose value now differs from the stored plot become
        dirty and remember the field so the next save sends it along with the
        position; setting a field back to its stored value undoes that.

        Raises:
            ValidationError: unknown field, bad value, or block change on a saved plot
        """
        if key not in EDITABLE_FIELDS:
            raise ValidationError.for_field(key, "Field cannot be edited on the canvas")

        targets = self._selected_nodes()
        if not targets:
            return ActionResult(success=False, message="Select a plot to edit")

        if key == "block_id" and any(not n.is_new for n in targets):
            raise ValidationError.for_field(key, "Block cannot be changed after a plot is created")

        # validate every target before touching any of them
        updated: Dict[str, PlotNodeData] = {}
        for node in targets:
            try:
                updated[node.id] = PlotNodeData.model_validate({**node.data.model_dump(), key: value})
            except PydanticValidationError as exc:
                raise ValidationError.from_pydantic(exc) from exc

        for node in targets:
            self.nodes[node.id] = node.model_copy(update={"data": updated[node.id]})
            if not node.is_new:
                self._edited_fields.setdefault(node.id, set()).add(key)
                self._sync_dirty(node.id)

        return ActionResult(
            success=True,
            message=f"Updated {key} on {_plural(len(targets))}",
            affected_ids=[n.id for n in targets],
        )

    def move_node(self, node_id: str, x: float, y: float) -> ActionResult:
        """Drag end: record the node's new top-left corner."""
        node = self.get_node(node_id)
        position = parse_model(CanvasPosition, {**node.position.model_dump(), "x": x, "y": y})
        return self._reposition(node, position)

    def resize_node(self, node_id: str, width: float, height: float,
                    x: Optional[float] = None, y: Optional[float] = None) -> ActionResult:
        """Resize end: record the new size (and corner, when resizing from the top/left)."""
        node = self.get_node(node_id)
        changes = {"width": width, "height": height}
        if x is not None:
            changes["x"] = x
        if y is not None:
            changes["y"] = y
        position = parse_model(CanvasPosition, {**node.position.model_dump(), **changes})
        return self._reposition(node, position)

    def _reposition(self, node: CanvasNode, position: CanvasPosition) -> ActionResult:
        if position == node.position:
            return ActionResult(success=True, message="Position unchanged", affected_ids=[node.id])

        self.nodes[node.id] = node.model_copy(update={"position": position})
        # drafts are sent whole on save, so only saved plots are tracked
        if not node.is_new:
            self._sync_dirty(node.id)
        return ActionResult(success=True, message=f"Plot {node.data.plot_number} repositioned", affected_ids=[node.id])

    def discard_drafts(self) -> ActionResult:
        """Drop every draft and forget pending moves; saved plots stay as they are."""
        removed = [n.id for n in self.pending_creates]
        for node_id in removed:
            del self.nodes[node_id]
        self.selected_ids -= set(removed)
        self.dirty_ids.clear()
        self._edited_fields.clear()
        return ActionResult(success=True, message="Canvas drafts cleared", affected_ids=removed)

    # ==================== Store round trips ====================

    async def delete_selected(self, confirm: Optional[Callable[[int], bool]] = None) -> DeleteOutcome:
        """
        Delete the selection: drafts locally, saved plots through the store.

        Store deletions run together and each one reports on its own; one
        failure does not stop the others. The caller is responsible for
        asking the user first (pass `confirm` to have it asked here).
        """
        targets = self._selected_nodes()
        if not targets:
            return DeleteOutcome(success=False, message="Select a plot to delete")
        if confirm is not None and not confirm(len(targets)):
            return DeleteOutcome(success=False, message="Deletion cancelled")

        drafts = [n for n in targets if n.is_new]
        persisted = [n for n in targets if not n.is_new]

        for node in drafts:
            del self.nodes[node.id]

        results = await asyncio.gather(
            *(self._store.delete_plot(n.id) for n in persisted),
            return_exceptions=True,
        )

        deleted: List[str] = []
        failures: Dict[str, str] = {}
        unexpected: List[BaseException] = []
        for node, result in zip(persisted, results):
            if isinstance(result, PlotInventoryError):
                failures[node.id] = result.message
            elif isinstance(result, BaseException):
                failures[node.id] = str(result)
                unexpected.append(result)
            elif not result.deleted:
                failures[node.id] = "Plot was not found on the server"
            else:
                deleted.append(node.id)

        for node_id in deleted:
            self.nodes.pop(node_id, None)
            self.dirty_ids.discard(node_id)
            self._edited_fields.pop(node_id, None)
        self.selected_ids.clear()

        refresh_error = None
        if persisted:
            try:
                await self.refresh()
            except TransportError as e:
                refresh_error = e.message
                logger.warning(f"Canvas {self.project_id} refresh after delete failed: {e.message}")

        for node_id, reason in failures.items():
            logger.error(f"Delete plot {node_id} failed: {reason}")
        if unexpected:
            raise unexpected[0]

        removed = len(drafts) + len(deleted)
        if failures:
            message = f"Deleted {removed} of {_plural(len(targets))}; {len(failures)} failed"
        else:
            message = f"Deleted {_plural(removed)}"
        logger.info(f"Canvas {self.project_id}: {message}")

        return DeleteOutcome(
            success=not failures,
            message=message,
            affected_ids=[n.id for n in drafts] + deleted,
            removed_drafts=[n.id for n in drafts],
            deleted_ids=deleted,
            failures=failures,
            refresh_error=refresh_error,
        )

    def _build_create_requests(self, drafts: List[CanvasNode], now: datetime) -> List[PlotCreate]:
        requests: List[PlotCreate] = []
        errors: Dict[str, str] = {}
        for node in drafts:
            payload = node.data.model_dump()
            payload["canvas_position"] = with_default_size(node.position).model_dump()
            try:
                requests.append(with_status_fields(PlotCreate.model_validate(payload), now=now))
            except PydanticValidationError as exc:
                errors.update(ValidationError.from_pydantic(exc, prefix=node.id).field_errors)
        if errors:
            raise ValidationError(errors)
        return requests

    def _build_move_requests(self, moved: List[CanvasNode], now: datetime) -> List[BulkPlotUpdate]:
        """
        Raises:
            InvalidTransitionError: a status edit the table forbids, keyed <node_id>.status
            ValidationError: an edited value is not valid for the store
        """
        for node in moved:
            if "status" in self._edited_fields.get(node.id, ()):
                check_transition(self._persisted[node.id].data.status, node.data.status,
                                 field=f"{node.id}.status")

        requests: List[BulkPlotUpdate] = []
        errors: Dict[str, str] = {}
        for node in moved:
            payload = {
                "id": node.id,
                "canvas_position": with_default_size(node.position).model_dump(),
            }
            edited = self._edited_fields.get(node.id, set())
            for field in edited:
                payload[field] = getattr(node.data, field)
            if "status" in edited:
                payload.update(status_update_payload(status_update_for(node.data.status, now=now)))
            try:
                requests.append(BulkPlotUpdate.model_validate(payload))
            except PydanticValidationError as exc:
                errors.update(ValidationError.from_pydantic(exc, prefix=node.id).field_errors)
        if errors:
            raise ValidationError(errors)
        return requests

    async def save(self) -> SaveOutcome:
        """
        Persist drafts and dirty plots.

        Drafts go out as one bulk create (full field set + position), dirty
        plots as one bulk update (position plus locally edited fields). Both
        calls run together and report separately; a failed half leaves its
        part of the working set untouched. Validation happens before either
        call is made.

        Raises:
            ValidationError: a draft or edit is not valid for the store
            InvalidTransitionError: a status edit moves a plot where the table forbids
        """
        drafts = self.pending_creates
        moved = self.pending_moves

        if not drafts and not moved:
            return SaveOutcome(
                success=True,
                nothing_to_save=True,
                message="Nothing to save. Add plots or move existing ones before saving.",
            )

        now = datetime.now(timezone.utc)
        create_requests = self._build_create_requests(drafts, now) if drafts else []
        move_requests = self._build_move_requests(moved, now) if moved else []

        jobs = []
        if create_requests:
            jobs.append(("create", self._store.bulk_create_plots(self.project_id, create_requests)))
        if move_requests:
            jobs.append(("update", self._store.bulk_update_plots(self.project_id, move_requests)))

        results = await asyncio.gather(*(job for _, job in jobs), return_exceptions=True)
        outcome = dict(zip((label for label, _ in jobs), results))

        saved = SaveOutcome(success=False, message="")
        unexpected: List[BaseException] = []

        created = outcome.get("create")
        if isinstance(created, BaseException):
            saved.create_error = getattr(created, "message", str(created))
            if not isinstance(created, PlotInventoryError):
                unexpected.append(created)
        elif created is not None:
            saved.created_count = created.count
            for node in drafts:
                self.nodes.pop(node.id, None)
                self.selected_ids.discard(node.id)

        updated = outcome.get("update")
        if isinstance(updated, BaseException):
            saved.update_error = getattr(updated, "message", str(updated))
            if not isinstance(updated, PlotInventoryError):
                unexpected.append(updated)
        elif updated is not None:
            saved.updated = updated
            for node in moved:
                self.dirty_ids.discard(node.id)
                self._edited_fields.pop(node.id, None)

        saved.success = saved.create_error is None and saved.update_error is None
        if saved.success:
            self.selected_ids.clear()

        create_ok = created is not None and not isinstance(created, BaseException)
        update_ok = updated is not None and not isinstance(updated, BaseException)
        if create_ok or update_ok:
            try:
                await self.refresh()
            except TransportError as e:
                saved.refresh_error = e.message
                logger.warning(f"Canvas {self.project_id} refresh after save failed: {e.message}")

        saved.message = self._save_message(saved, len(drafts), len(moved))
        saved.affected_ids = [n.id for n in drafts] + [n.id for n in moved]
        if saved.success:
            logger.info(f"Canvas {self.project_id}: {saved.message}")
        else:
            logger.error(f"Canvas {self.project_id}: {saved.message}")

        if unexpected:
            raise unexpected[0]
        return saved

    @staticmethod
    def _save_message(saved: SaveOutcome, draft_count: int, move_count: int) -> str:
        parts = []
        if draft_count:
            if saved.create_error:
                parts.append(f"creating {_plural(draft_count)} failed: {saved.create_error}")
            else:
                parts.append(f"{saved.created_count} created")
        if move_count:
            if saved.update_error:
                parts.append(f"updating {_plural(move_count)} failed: {saved.update_error}")
            else:
                parts.append(f"{_plural(move_count)} updated")

        prefix = "Canvas changes saved" if saved.success else "Canvas save incomplete"
        return f"{prefix}: {', '.join(parts)}"


class CanvasSessionRegistry:
    """
    Open canvas sessions by id; one per editor, dropped on close.

    A session unused for longer than `ttl` seconds is dropped the next time
    the registry is touched. A ttl of 0 keeps sessions until they are closed.
    """

    def __init__(self, ttl: float = CANVAS_SESSION_TTL, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._sessions: Dict[str, CanvasSession] = {}
        self._last_used: Dict[str, float] = {}

    def _evict_idle(self) -> None:
        if self.ttl <= 0:
            return
        cutoff = self._clock() - self.ttl
        idle = [sid for sid, used in self._last_used.items() if used < cutoff]
        for session_id in idle:
            self.close(session_id)
        if idle:
            logger.info(f"Dropped {len(idle)} idle canvas session(s)")

    def add(self, session: CanvasSession) -> str:
        self._evict_idle()
        session_id = uuid.uuid4().hex
        self._sessions[session_id] = session
        self._last_used[session_id] = self._clock()
        return session_id

    def get(self, session_id: str) -> CanvasSession:
        self._evict_idle()
        try:
            session = self._sessions[session_id]
        except KeyError:
            raise NotFoundError("Canvas session", session_id) from None
        self._last_used[session_id] = self._clock()
        return session

    def close(self, session_id: str) -> bool:
        self._last_used.pop(session_id, None)
        return self._sessions.pop(session_id, None) is not None

    def __len__(self) -> int:
        return len(self._sessions)
