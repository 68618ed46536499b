"""
Plot persistence boundary (PlotStore)
✅ Abstract async interface used by the services and the canvas reconciler
✅ SupabasePlotStore: plots / blocks tables through supabase-py AsyncClient
✅ Every failed query surfaces as TransportError, logged via log_db_operation
"""
import asyncio
import math
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import List, Optional

from supabase import AsyncClient

from config.settings import PLOTS_TABLE, BLOCKS_TABLE
from schemas.block import Block, BlockCreate, BlockUpdate
from schemas.plot import (
    BulkCreateResult,
    BulkPlotUpdate,
    BulkUpdateResult,
    DeleteResult,
    Pagination,
    Plot,
    PlotCreate,
    PlotFilters,
    PlotStatusUpdate,
    PlotUpdate,
    PlotsPage,
)
from services.errors import NotFoundError, TransportError
from services.logger import logger, log_db_operation
from services.status_machine import status_update_payload


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class PlotStore(ABC):
    """What the core needs from persistence. Implementations raise TransportError on I/O failure."""

    @abstractmethod
    async def list_plots(self, project_id: str, filters: Optional[PlotFilters] = None) -> PlotsPage: ...

    @abstractmethod
    async def get_plot(self, plot_id: str) -> Optional[Plot]: ...

    @abstractmethod
    async def create_plot(self, project_id: str, plot: PlotCreate) -> Plot: ...

    @abstractmethod
    async def bulk_create_plots(self, project_id: str, plots: List[PlotCreate]) -> BulkCreateResult: ...

    @abstractmethod
    async def update_plot(self, plot_id: str, update: PlotUpdate) -> Plot: ...

    @abstractmethod
    async def update_plot_status(self, plot_id: str, update: PlotStatusUpdate) -> Plot: ...

    @abstractmethod
    async def bulk_update_plots(self, project_id: str, updates: List[BulkPlotUpdate]) -> BulkUpdateResult: ...

    @abstractmethod
    async def delete_plot(self, plot_id: str) -> DeleteResult: ...

    @abstractmethod
    async def list_blocks_by_project(self, project_id: str) -> List[Block]: ...

    @abstractmethod
    async def get_block(self, block_id: str) -> Optional[Block]: ...

    @abstractmethod
    async def create_block(self, project_id: str, block: BlockCreate) -> Block: ...

    @abstractmethod
    async def update_block(self, block_id: str, update: BlockUpdate) -> Block: ...

    @abstractmethod
    async def delete_block(self, block_id: str) -> DeleteResult: ...


class SupabasePlotStore(PlotStore):
    """PlotStore backed by two Supabase tables"""

    def __init__(self, client: AsyncClient):
        self.client = client

    async def _execute(self, query, operation: str, table: str):
        try:
            result = await query.execute()
        except Exception as e:
            log_db_operation(operation, table, False, error=str(e))
            raise TransportError(f"{operation} {table}", str(e)) from e

        log_db_operation(operation, table, True, len(result.data or []))
        return result

    # ==================== Plots ====================

    async def list_plots(self, project_id: str, filters: Optional[PlotFilters] = None) -> PlotsPage:
        """
        List one page of a project's plots

        Args:
            project_id: project ID
            filters: status / price range / page / limit

        Returns:
            PlotsPage: plots ordered by plot_number plus pagination info
        """
        filters = filters or PlotFilters()
        start = (filters.page - 1) * filters.limit

        query = self.client.table(PLOTS_TABLE)\
            .select("*", count="exact")\
            .eq("project_id", project_id)

        if filters.status:
            query = query.eq("status", filters.status.value)
        if filters.min_price is not None:
            query = query.gte("price", filters.min_price)
        if filters.max_price is not None:
            query = query.lte("price", filters.max_price)

        query = query.order("plot_number").range(start, start + filters.limit - 1)
        result = await self._execute(query, "SELECT", PLOTS_TABLE)

        rows = result.data or []
        total = result.count if result.count is not None else len(rows)
        return PlotsPage(
            plots=[Plot(**row) for row in rows],
            pagination=Pagination(
                total=total,
                page=filters.page,
                limit=filters.limit,
                total_pages=math.ceil(total / filters.limit) if total else 0,
            ),
        )

    async def get_plot(self, plot_id: str) -> Optional[Plot]:
        query = self.client.table(PLOTS_TABLE).select("*").eq("id", plot_id).limit(1)
        result = await self._execute(query, "SELECT", PLOTS_TABLE)

        if result.data:
            return Plot(**result.data[0])
        return None

    def _insert_row(self, project_id: str, plot: PlotCreate) -> dict:
        row = plot.model_dump(mode="json", exclude_none=True)
        row["project_id"] = project_id
        row["created_at"] = _now()
        row["updated_at"] = row["created_at"]
        return row

    async def create_plot(self, project_id: str, plot: PlotCreate) -> Plot:
        query = self.client.table(PLOTS_TABLE).insert(self._insert_row(project_id, plot))
        result = await self._execute(query, "INSERT", PLOTS_TABLE)

        if not result.data:
            raise TransportError(f"INSERT {PLOTS_TABLE}", "no row returned")
        return Plot(**result.data[0])

    async def bulk_create_plots(self, project_id: str, plots: List[PlotCreate]) -> BulkCreateResult:
        if not plots:
            return BulkCreateResult()

        rows = [self._insert_row(project_id, p) for p in plots]
        result = await self._execute(self.client.table(PLOTS_TABLE).insert(rows), "BULK_INSERT", PLOTS_TABLE)

        created = [Plot(**row) for row in (result.data or [])]
        return BulkCreateResult(plots=created, count=len(created))

    async def _update_row(self, plot_id: str, data: dict) -> Plot:
        data["updated_at"] = _now()
        query = self.client.table(PLOTS_TABLE).update(data).eq("id", plot_id)
        result = await self._execute(query, "UPDATE", PLOTS_TABLE)

        if not result.data:
            raise NotFoundError("Plot", plot_id)
        return Plot(**result.data[0])

    async def update_plot(self, plot_id: str, update: PlotUpdate) -> Plot:
        return await self._update_row(plot_id, update.model_dump(mode="json", exclude_unset=True))

    async def update_plot_status(self, plot_id: str, update: PlotStatusUpdate) -> Plot:
        return await self._update_row(plot_id, status_update_payload(update))

    async def bulk_update_plots(self, project_id: str, updates: List[BulkPlotUpdate]) -> BulkUpdateResult:
        """
        Apply per-plot partial updates (canvas positions, edited fields)

        Supabase has no multi-row update with different values per row, so
        each entry is its own UPDATE, all dispatched together.

        Returns:
            BulkUpdateResult: rows matched / modified
        """
        if not updates:
            return BulkUpdateResult()

        stamp = _now()
        queries = []
        for item in updates:
            data = item.model_dump(mode="json", exclude_unset=True, exclude={"id"})
            data["updated_at"] = stamp
            queries.append(
                self.client.table(PLOTS_TABLE)
                .update(data)
                .eq("id", item.id)
                .eq("project_id", project_id)
            )

        results = await asyncio.gather(
            *(self._execute(q, "UPDATE", PLOTS_TABLE) for q in queries),
            return_exceptions=True,
        )

        failures = [r for r in results if isinstance(r, BaseException)]
        for r in failures:
            if not isinstance(r, TransportError):
                raise r
        if failures:
            raise TransportError(
                f"BULK_UPDATE {PLOTS_TABLE}",
                f"{len(failures)} of {len(updates)} rows failed: {failures[0].detail}",
            )

        matched = sum(1 for r in results if r.data)
        logger.info(f"Bulk update for project {project_id}: {matched}/{len(updates)} rows matched")
        return BulkUpdateResult(matched=matched, modified=matched)

    async def delete_plot(self, plot_id: str) -> DeleteResult:
        query = self.client.table(PLOTS_TABLE).delete().eq("id", plot_id)
        result = await self._execute(query, "DELETE", PLOTS_TABLE)
        return DeleteResult(deleted=bool(result.data))

    # ==================== Blocks ====================

    async def list_blocks_by_project(self, project_id: str) -> List[Block]:
        query = self.client.table(BLOCKS_TABLE)\
            .select("*")\
            .eq("project_id", project_id)\
            .order("created_at")
        result = await self._execute(query, "SELECT", BLOCKS_TABLE)
        return [Block(**row) for row in (result.data or [])]

    async def get_block(self, block_id: str) -> Optional[Block]:
        query = self.client.table(BLOCKS_TABLE).select("*").eq("id", block_id).limit(1)
        result = await self._execute(query, "SELECT", BLOCKS_TABLE)

        if result.data:
            return Block(**result.data[0])
        return None

    async def create_block(self, project_id: str, block: BlockCreate) -> Block:
        row = block.model_dump(mode="json")
        row["project_id"] = project_id
        row["created_at"] = _now()
        row["updated_at"] = row["created_at"]

        result = await self._execute(self.client.table(BLOCKS_TABLE).insert(row), "INSERT", BLOCKS_TABLE)
        if not result.data:
            raise TransportError(f"INSERT {BLOCKS_TABLE}", "no row returned")
        return Block(**result.data[0])

    async def update_block(self, block_id: str, update: BlockUpdate) -> Block:
        data = update.model_dump(mode="json", exclude_unset=True)
        data["updated_at"] = _now()

        query = self.client.table(BLOCKS_TABLE).update(data).eq("id", block_id)
        result = await self._execute(query, "UPDATE", BLOCKS_TABLE)
        if not result.data:
            raise NotFoundError("Block", block_id)
        return Block(**result.data[0])

    async def delete_block(self, block_id: str) -> DeleteResult:
        query = self.client.table(BLOCKS_TABLE).delete().eq("id", block_id)
        result = await self._execute(query, "DELETE", BLOCKS_TABLE)
        return DeleteResult(deleted=bool(result.data))
