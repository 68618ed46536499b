"""
Pydantic schemas, re-exported in one place
"""

from .plot import (
    AreaUnit,
    DimensionUnit,
    Facing,
    PlotType,
    PlotStatus,
    Dimensions,
    CanvasPosition,
    Boundaries,
    PlotBase,
    PlotCreate,
    PlotUpdate,
    BulkPlotUpdate,
    PlotStatusUpdate,
    Plot,
    PlotFilters,
    Pagination,
    PlotsPage,
    BulkCreateResult,
    BulkUpdateResult,
    DeleteResult,
    PlotStats,
)

from .block import (
    BlockStatus,
    BlockBase,
    BlockCreate,
    BlockUpdate,
    Block,
)

from .numbering import BulkNumberingSpec

from .canvas import (
    PlotNodeData,
    CanvasNode,
    CanvasSnapshot,
    ActionResult,
    DeleteOutcome,
    SaveOutcome,
)

__all__ = [
    # Plot schemas
    "AreaUnit",
    "DimensionUnit",
    "Facing",
    "PlotType",
    "PlotStatus",
    "Dimensions",
    "CanvasPosition",
    "Boundaries",
    "PlotBase",
    "PlotCreate",
    "PlotUpdate",
    "BulkPlotUpdate",
    "PlotStatusUpdate",
    "Plot",
    "PlotFilters",
    "Pagination",
    "PlotsPage",
    "BulkCreateResult",
    "BulkUpdateResult",
    "DeleteResult",
    "PlotStats",

    # Block schemas
    "BlockStatus",
    "BlockBase",
    "BlockCreate",
    "BlockUpdate",
    "Block",

    # Numbering
    "BulkNumberingSpec",

    # Canvas
    "PlotNodeData",
    "CanvasNode",
    "CanvasSnapshot",
    "ActionResult",
    "DeleteOutcome",
    "SaveOutcome",
]
