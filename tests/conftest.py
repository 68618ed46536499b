"""Shared fixtures: an in-memory PlotStore and plot / block factories."""

import asyncio
import itertools
import math
import os
from datetime import datetime, timezone

# no log files during tests
os.environ["LOG_DIR"] = ""

import pytest

from schemas.block import Block
from schemas.plot import (
    BulkCreateResult,
    BulkUpdateResult,
    DeleteResult,
    Pagination,
    Plot,
    PlotFilters,
    PlotsPage,
)
from services.errors import NotFoundError
from services.plot_store import PlotStore
from services.status_machine import status_update_payload

PROJECT_ID = "proj-1"
BLOCK_ID = "blk-1"


def make_plot(**overrides) -> Plot:
    data = {
        "id": "p1",
        "project_id": PROJECT_ID,
        "block_id": BLOCK_ID,
        "plot_number": "A-001",
        "area": 1200,
        "area_unit": "SQ_FT",
        "price": 1_800_000,
        "price_per_unit": 1500,
        "facing": "NORTH",
        "status": "available",
    }
    data.update(overrides)
    return Plot(**data)


def make_block(**overrides) -> Block:
    data = {"id": BLOCK_ID, "project_id": PROJECT_ID, "name": "Phase 1"}
    data.update(overrides)
    return Block(**data)


class FakePlotStore(PlotStore):
    """
    In-memory PlotStore.

    Records every call, yields to the event loop inside each one so
    concurrent dispatch is observable through `events`, and raises whatever
    is registered in `failures` under "<operation>" or "<operation>:<id>".
    """

    def __init__(self, plots=(), blocks=()):
        self.plots = {p.id: p for p in plots}
        self.blocks = {b.id: b for b in blocks}
        self.calls = []
        self.events = []
        self.failures = {}
        self._ids = itertools.count(1)

    async def _enter(self, operation, *args, key=None):
        self.calls.append((operation, args))
        self.events.append(("start", operation))
        await asyncio.sleep(0)
        self.events.append(("end", operation))
        failure = self.failures.get(f"{operation}:{key}") or self.failures.get(operation)
        if failure is not None:
            raise failure

    def calls_to(self, operation):
        return [args for name, args in self.calls if name == operation]

    def _store_new(self, project_id, plot):
        plot_id = f"plot-{next(self._ids)}"
        stored = Plot(
            id=plot_id,
            project_id=project_id,
            created_at=datetime.now(timezone.utc),
            **plot.model_dump(),
        )
        self.plots[plot_id] = stored
        return stored

    def _apply(self, plot_id, changes):
        current = self.plots.get(plot_id)
        if current is None:
            raise NotFoundError("Plot", plot_id)
        updated = Plot.model_validate({**current.model_dump(), **changes})
        self.plots[plot_id] = updated
        return updated

    # plots

    async def list_plots(self, project_id, filters=None):
        await self._enter("list_plots", project_id, filters)
        filters = filters or PlotFilters()
        rows = [p for p in self.plots.values() if p.project_id == project_id]
        if filters.status:
            rows = [p for p in rows if p.status == filters.status]
        if filters.min_price is not None:
            rows = [p for p in rows if p.price >= filters.min_price]
        if filters.max_price is not None:
            rows = [p for p in rows if p.price <= filters.max_price]
        rows.sort(key=lambda p: p.plot_number)

        start = (filters.page - 1) * filters.limit
        total = len(rows)
        return PlotsPage(
            plots=rows[start:start + filters.limit],
            pagination=Pagination(
                total=total,
                page=filters.page,
                limit=filters.limit,
                total_pages=math.ceil(total / filters.limit) if total else 0,
            ),
        )

    async def get_plot(self, plot_id):
        await self._enter("get_plot", plot_id, key=plot_id)
        return self.plots.get(plot_id)

    async def create_plot(self, project_id, plot):
        await self._enter("create_plot", project_id, plot)
        return self._store_new(project_id, plot)

    async def bulk_create_plots(self, project_id, plots):
        await self._enter("bulk_create_plots", project_id, plots)
        created = [self._store_new(project_id, p) for p in plots]
        return BulkCreateResult(plots=created, count=len(created))

    async def update_plot(self, plot_id, update):
        await self._enter("update_plot", plot_id, update, key=plot_id)
        return self._apply(plot_id, update.model_dump(exclude_unset=True))

    async def update_plot_status(self, plot_id, update):
        await self._enter("update_plot_status", plot_id, update, key=plot_id)
        return self._apply(plot_id, status_update_payload(update))

    async def bulk_update_plots(self, project_id, updates):
        await self._enter("bulk_update_plots", project_id, updates)
        matched = 0
        for item in updates:
            current = self.plots.get(item.id)
            if current is None or current.project_id != project_id:
                continue
            self._apply(item.id, item.model_dump(exclude_unset=True, exclude={"id"}))
            matched += 1
        return BulkUpdateResult(matched=matched, modified=matched)

    async def delete_plot(self, plot_id):
        await self._enter("delete_plot", plot_id, key=plot_id)
        return DeleteResult(deleted=self.plots.pop(plot_id, None) is not None)

    # blocks

    async def list_blocks_by_project(self, project_id):
        await self._enter("list_blocks_by_project", project_id)
        return [b for b in self.blocks.values() if b.project_id == project_id]

    async def get_block(self, block_id):
        await self._enter("get_block", block_id, key=block_id)
        return self.blocks.get(block_id)

    async def create_block(self, project_id, block):
        await self._enter("create_block", project_id, block)
        stored = Block(id=f"blk-{next(self._ids)}", project_id=project_id, **block.model_dump())
        self.blocks[stored.id] = stored
        return stored

    async def update_block(self, block_id, update):
        await self._enter("update_block", block_id, update, key=block_id)
        current = self.blocks.get(block_id)
        if current is None:
            raise NotFoundError("Block", block_id)
        updated = current.model_copy(update=update.model_dump(exclude_unset=True))
        self.blocks[block_id] = updated
        return updated

    async def delete_block(self, block_id):
        await self._enter("delete_block", block_id, key=block_id)
        return DeleteResult(deleted=self.blocks.pop(block_id, None) is not None)


@pytest.fixture
def store():
    """Store with one block and three plots, one of them never placed on the canvas."""
    return FakePlotStore(
        plots=[
            make_plot(id="p1", plot_number="A-001",
                      canvas_position={"x": 10, "y": 10, "width": 120, "height": 90}),
            make_plot(id="p2", plot_number="A-002", status="booked",
                      canvas_position={"x": 200, "y": 10}),
            make_plot(id="p3", plot_number="A-003", status="sold"),
        ],
        blocks=[make_block()],
    )


@pytest.fixture
def empty_store():
    return FakePlotStore()
