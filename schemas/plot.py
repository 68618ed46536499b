"""
Plot data models
A plot is the unit of sale inside a project block.
"""
from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from config.settings import DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT


class AreaUnit(str, Enum):
    SQ_FT = "SQ_FT"
    SQ_METER = "SQ_METER"
    SQ_YARDS = "SQ_YARDS"
    ACRES = "ACRES"


class DimensionUnit(str, Enum):
    FEET = "FEET"
    METER = "METER"


class Facing(str, Enum):
    NORTH = "NORTH"
    SOUTH = "SOUTH"
    EAST = "EAST"
    WEST = "WEST"
    NORTH_EAST = "NORTH_EAST"
    NORTH_WEST = "NORTH_WEST"
    SOUTH_EAST = "SOUTH_EAST"
    SOUTH_WEST = "SOUTH_WEST"


class PlotType(str, Enum):
    REGULAR = "REGULAR"
    CORNER = "CORNER"
    ROAD = "ROAD"


class PlotStatus(str, Enum):
    AVAILABLE = "available"
    BOOKED = "booked"
    RESERVED = "reserved"
    SOLD = "sold"


class Dimensions(BaseModel):
    length: float = Field(..., gt=0, description="Frontage length")
    width: float = Field(..., gt=0, description="Depth")
    unit: DimensionUnit = Field(default=DimensionUnit.FEET)


class CanvasPosition(BaseModel):
    """Placement of a plot on the layout canvas"""
    x: float
    y: float
    width: Optional[float] = Field(None, gt=0)
    height: Optional[float] = Field(None, gt=0)
    rotation: Optional[float] = None


class Boundaries(BaseModel):
    """Polygon geometry (GeoJSON style); stored but not edited by the canvas."""
    type: Literal["Polygon"] = "Polygon"
    coordinates: List[List[List[float]]]


def clean_plot_number(v: Optional[str]) -> Optional[str]:
    """Plot numbers are trimmed; blank is not a number"""
    if v is None:
        return v
    v = v.strip()
    if not v:
        raise ValueError('Plot number is required')
    return v


class PlotBase(BaseModel):
    """Plot fields shared by create requests and stored plots"""
    plot_number: str = Field(..., min_length=1, max_length=50, description="Free-form number, unique within a project", examples=["A-001"])
    area: float = Field(..., gt=0, description="Plot area", examples=[1200.0])
    area_unit: AreaUnit = Field(..., description="Unit of area", examples=["SQ_FT"])
    dimensions: Optional[Dimensions] = None
    price: float = Field(..., gt=0, description="Total price", examples=[1800000.0])
    price_per_unit: float = Field(..., gt=0, description="Price per area unit", examples=[1500.0])
    facing: Facing = Field(..., examples=["NORTH"])
    plot_type: PlotType = Field(default=PlotType.REGULAR)
    front_road_width: Optional[float] = Field(None, gt=0, description="Width of the road in front of the plot")
    status: PlotStatus = Field(default=PlotStatus.AVAILABLE)
    canvas_position: Optional[CanvasPosition] = None
    boundaries: Optional[Boundaries] = None

    @field_validator('plot_number')
    @classmethod
    def validate_plot_number(cls, v):
        return clean_plot_number(v)


class PlotCreate(PlotBase):
    """Payload for creating one plot (single or as part of a bulk batch)"""
    block_id: str = Field(..., min_length=1, description="Block the plot belongs to")
    booked_by: Optional[str] = None
    booking_date: Optional[datetime] = None
    sold_date: Optional[datetime] = None


class PlotUpdate(BaseModel):
    """Editable plot fields. project_id and block_id are fixed at creation."""
    plot_number: Optional[str] = Field(None, min_length=1, max_length=50)
    area: Optional[float] = Field(None, gt=0)
    area_unit: Optional[AreaUnit] = None
    dimensions: Optional[Dimensions] = None
    price: Optional[float] = Field(None, gt=0)
    price_per_unit: Optional[float] = Field(None, gt=0)
    facing: Optional[Facing] = None
    plot_type: Optional[PlotType] = None
    front_road_width: Optional[float] = Field(None, gt=0)
    status: Optional[PlotStatus] = None
    canvas_position: Optional[CanvasPosition] = None
    boundaries: Optional[Boundaries] = None

    @field_validator('plot_number')
    @classmethod
    def validate_plot_number(cls, v):
        return clean_plot_number(v)


class BulkPlotUpdate(PlotUpdate):
    """One entry of a bulk update; usually only id + canvas_position"""
    id: str = Field(..., min_length=1)
    booked_by: Optional[str] = None
    booking_date: Optional[datetime] = None
    sold_date: Optional[datetime] = None


class PlotStatusUpdate(BaseModel):
    """What a status change writes to the store"""
    status: PlotStatus
    booked_by: Optional[str] = None
    booking_date: Optional[datetime] = None
    sold_date: Optional[datetime] = None


class Plot(PlotBase):
    """Stored plot"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    project_id: str
    block_id: Optional[str] = None
    booked_by: Optional[str] = None
    booking_date: Optional[datetime] = None
    sold_date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator('plot_type', mode='before')
    @classmethod
    def default_plot_type(cls, v):
        """Older rows have no plot type"""
        return PlotType.REGULAR if v is None else v


class PlotFilters(BaseModel):
    status: Optional[PlotStatus] = None
    min_price: Optional[float] = Field(None, ge=0)
    max_price: Optional[float] = Field(None, ge=0)
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT)

    @field_validator('max_price')
    @classmethod
    def validate_price_range(cls, v, info):
        """max_price must not be below min_price"""
        min_price = info.data.get('min_price')
        if v is not None and min_price is not None and v < min_price:
            raise ValueError('Max price cannot be lower than min price')
        return v


class Pagination(BaseModel):
    total: int = 0
    page: int = 1
    limit: int = DEFAULT_PAGE_LIMIT
    total_pages: int = 0


class PlotsPage(BaseModel):
    plots: List[Plot] = Field(default_factory=list)
    pagination: Pagination = Field(default_factory=Pagination)


class BulkCreateResult(BaseModel):
    plots: List[Plot] = Field(default_factory=list)
    count: int = 0


class BulkUpdateResult(BaseModel):
    matched: int = 0
    modified: int = 0


class DeleteResult(BaseModel):
    deleted: bool


class PlotStats(BaseModel):
    """Per-status counts for a set of plots"""
    available: int = Field(default=0, ge=0)
    booked: int = Field(default=0, ge=0)
    reserved: int = Field(default=0, ge=0)
    sold: int = Field(default=0, ge=0)

    @property
    def total(self) -> int:
        return self.available + self.booked + self.reserved + self.sold
