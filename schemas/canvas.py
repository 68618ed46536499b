"""
Canvas layout models
Working-set nodes for the layout editor and the outcomes its operations report.
"""
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from schemas.plot import (
    AreaUnit,
    BulkUpdateResult,
    CanvasPosition,
    Dimensions,
    Facing,
    Plot,
    PlotStats,
    PlotStatus,
    PlotType,
)


class PlotNodeData(BaseModel):
    """
    Editable plot fields carried by a canvas node.

    Enumerations are enforced, positivity is not: a fresh draft is unpriced
    until someone fills it in. Drafts are validated as PlotCreate on save.
    """
    plot_number: str = ""
    block_id: Optional[str] = None
    area: float = 0
    area_unit: AreaUnit = AreaUnit.SQ_FT
    price: float = 0
    price_per_unit: float = 0
    facing: Facing = Facing.NORTH
    plot_type: PlotType = PlotType.REGULAR
    status: PlotStatus = PlotStatus.AVAILABLE
    dimensions: Optional[Dimensions] = None
    front_road_width: Optional[float] = None

    @classmethod
    def from_plot(cls, plot: Plot) -> "PlotNodeData":
        return cls(
            plot_number=plot.plot_number,
            block_id=plot.block_id,
            area=plot.area,
            area_unit=plot.area_unit,
            price=plot.price,
            price_per_unit=plot.price_per_unit,
            facing=plot.facing,
            plot_type=plot.plot_type,
            status=plot.status,
            dimensions=plot.dimensions,
            front_road_width=plot.front_road_width,
        )


EDITABLE_FIELDS = frozenset(PlotNodeData.model_fields)


class CanvasNode(BaseModel):
    id: str
    data: PlotNodeData
    position: CanvasPosition
    is_new: bool = False


class CanvasSnapshot(BaseModel):
    """Everything the presentation layer needs to draw the editor"""
    project_id: str
    nodes: List[CanvasNode] = Field(default_factory=list)
    selected_ids: List[str] = Field(default_factory=list)
    dirty_ids: List[str] = Field(default_factory=list)
    pending_create_count: int = 0
    pending_move_count: int = 0
    stats: PlotStats = Field(default_factory=PlotStats)


class ActionResult(BaseModel):
    success: bool
    message: str
    affected_ids: List[str] = Field(default_factory=list)


class DeleteOutcome(ActionResult):
    removed_drafts: List[str] = Field(default_factory=list)
    deleted_ids: List[str] = Field(default_factory=list)
    failures: Dict[str, str] = Field(default_factory=dict)
    refresh_error: Optional[str] = None


class SaveOutcome(ActionResult):
    nothing_to_save: bool = False
    created_count: int = 0
    updated: Optional[BulkUpdateResult] = None
    create_error: Optional[str] = None
    update_error: Optional[str] = None
    refresh_error: Optional[str] = None
