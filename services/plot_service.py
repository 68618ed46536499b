"""
Plot management service (PlotService)
Plot / block CRUD, bulk numbering, status changes and per-status stats.
Everything is validated before the store is called.
"""
from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional, Union

from config.settings import MAX_PAGE_LIMIT
from schemas.block import Block, BlockCreate, BlockUpdate
from schemas.numbering import BulkNumberingSpec
from schemas.plot import (
    BulkCreateResult,
    BulkPlotUpdate,
    BulkUpdateResult,
    DeleteResult,
    Plot,
    PlotCreate,
    PlotFilters,
    PlotStats,
    PlotStatus,
    PlotUpdate,
    PlotsPage,
)
from services.errors import NotFoundError, ValidationError, parse_model
from services.logger import logger
from services.numbering import generate
from services.plot_store import PlotStore
from services.stats import aggregate
from services.status_machine import (
    apply_status_change,
    check_transition,
    parse_status,
    status_update_for,
    status_update_payload,
    with_status_fields,
)


class PlotService:
    """Plot management service"""

    def __init__(self, store: PlotStore):
        self.store = store

    # ==================== Plots ====================

    async def list_plots(self, project_id: str,
                         filters: Union[PlotFilters, Mapping[str, Any], None] = None) -> PlotsPage:
        filters = parse_model(PlotFilters, filters or {})
        return await self.store.list_plots(project_id, filters)

    async def list_all_plots(self, project_id: str) -> List[Plot]:
        """Every plot of a project, following pagination to the end."""
        plots: List[Plot] = []
        page = 1
        while True:
            result = await self.store.list_plots(project_id, PlotFilters(page=page, limit=MAX_PAGE_LIMIT))
            plots.extend(result.plots)
            if not result.plots or page >= result.pagination.total_pages:
                return plots
            page += 1

    async def get_plot(self, plot_id: str) -> Plot:
        plot = await self.store.get_plot(plot_id)
        if plot is None:
            raise NotFoundError("Plot", plot_id)
        return plot

    async def _require_block(self, project_id: str, block_id: str) -> None:
        """
        Plots need a block of the same project

        Raises:
            ValidationError: project has no blocks, or block_id is not one of them
        """
        blocks = await self.store.list_blocks_by_project(project_id)
        if not blocks:
            raise ValidationError.for_field("block_id", "Create a block before adding plots")
        if block_id not in {b.id for b in blocks}:
            raise ValidationError.for_field("block_id", f"Block {block_id} does not belong to this project")

    async def create_plot(self, project_id: str, data: Union[PlotCreate, Mapping[str, Any]]) -> Plot:
        """
        Create one plot

        Args:
            project_id: project ID
            data: plot fields; price may be left out and is then area * price_per_unit

        Returns:
            Plot: the stored plot
        """
        if isinstance(data, Mapping) and data.get("price") is None:
            area, per_unit = data.get("area"), data.get("price_per_unit")
            if isinstance(area, (int, float)) and isinstance(per_unit, (int, float)):
                data = {**data, "price": area * per_unit}

        plot = with_status_fields(parse_model(PlotCreate, data))
        await self._require_block(project_id, plot.block_id)

        created = await self.store.create_plot(project_id, plot)
        logger.info(f"Plot {created.plot_number} created in project {project_id}")
        return created

    async def bulk_create_range(self, project_id: str,
                                spec: Union[BulkNumberingSpec, Mapping[str, Any]]) -> BulkCreateResult:
        """Generate a numbered range of plots and create them in one call."""
        plots = generate(spec)
        await self._require_block(project_id, plots[0].block_id)

        result = await self.store.bulk_create_plots(project_id, plots)
        logger.info(f"{result.count} plots created in project {project_id}")
        return result

    async def bulk_update_plots(self, project_id: str, updates: List[Any]) -> BulkUpdateResult:
        """
        Apply per-plot partial updates

        Entries that change a status are checked against the transition table
        and get the matching booking / sale fields; an entry repeating the
        current status drops it.

        Raises:
            ValidationError: bad entry or forbidden transition, keyed plots.<index>.<field>
            NotFoundError: a status-bearing entry names an unknown plot
        """
        items = [parse_model(BulkPlotUpdate, u, prefix=f"plots.{i}") for i, u in enumerate(updates)]
        if not items:
            return BulkUpdateResult()

        now = datetime.now(timezone.utc)
        items = [await self._with_status_rules(i, item, now) for i, item in enumerate(items)]
        return await self.store.bulk_update_plots(project_id, items)

    async def _with_status_rules(self, index: int, item: BulkPlotUpdate, now: datetime) -> BulkPlotUpdate:
        if item.status is None:
            return item

        plot = await self.get_plot(item.id)
        changes = item.model_dump(exclude_unset=True)
        if PlotStatus(plot.status) == item.status:
            changes.pop("status")
            return BulkPlotUpdate.model_validate(changes)

        check_transition(plot.status, item.status, field=f"plots.{index}.status")
        side_effects = status_update_payload(status_update_for(item.status, booked_by=item.booked_by, now=now))
        return BulkPlotUpdate.model_validate({**side_effects, **changes})

    async def update_plot(self, plot_id: str, data: Union[PlotUpdate, Mapping[str, Any]]) -> Plot:
        """
        Edit plot fields

        A status in the payload goes through the status machine so booking
        and sale dates are kept in step.
        """
        update = parse_model(PlotUpdate, data)
        changes = update.model_dump(exclude_unset=True)

        status = changes.pop("status", None)
        plot = None
        if changes:
            plot = await self.store.update_plot(plot_id, PlotUpdate(**changes))
        if status is not None:
            plot = await self.update_plot_status(plot_id, status)
        if plot is None:
            plot = await self.get_plot(plot_id)
        return plot

    async def update_plot_status(self, plot_id: str, new_status: Union[str, PlotStatus],
                                 booked_by: Optional[str] = None) -> Plot:
        """
        Change a plot's sale status

        Returns:
            Plot: updated plot; unchanged (and no store write) if it already has new_status

        Raises:
            ValidationError: unknown status
            NotFoundError: plot does not exist
        """
        status = parse_status(new_status)
        plot = await self.get_plot(plot_id)

        now = datetime.now(timezone.utc)
        changed = apply_status_change(plot, status, booked_by=booked_by, now=now)
        if changed is plot:
            logger.info(f"Plot {plot.plot_number} is already {status.value}")
            return plot

        updated = await self.store.update_plot_status(
            plot_id, status_update_for(status, booked_by=booked_by, now=now)
        )
        logger.info(f"Plot {plot.plot_number}: {PlotStatus(plot.status).value} -> {status.value}")
        return updated

    async def delete_plot(self, plot_id: str) -> DeleteResult:
        result = await self.store.delete_plot(plot_id)
        if not result.deleted:
            raise NotFoundError("Plot", plot_id)
        logger.info(f"Plot {plot_id} deleted")
        return result

    async def get_project_stats(self, project_id: str) -> PlotStats:
        return aggregate(await self.list_all_plots(project_id))

    # ==================== Blocks ====================

    async def list_blocks(self, project_id: str) -> List[Block]:
        return await self.store.list_blocks_by_project(project_id)

    async def create_block(self, project_id: str, data: Union[BlockCreate, Mapping[str, Any]]) -> Block:
        block = await self.store.create_block(project_id, parse_model(BlockCreate, data))
        logger.info(f"Block {block.name} created in project {project_id}")
        return block

    async def update_block(self, block_id: str, data: Union[BlockUpdate, Mapping[str, Any]]) -> Block:
        return await self.store.update_block(block_id, parse_model(BlockUpdate, data))

    async def delete_block(self, block_id: str) -> DeleteResult:
        result = await self.store.delete_block(block_id)
        if not result.deleted:
            raise NotFoundError("Block", block_id)
        return result
