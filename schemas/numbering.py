"""
Bulk numbering request
Describes a contiguous range of plots to generate, e.g. A-001 ... A-120.
"""
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from config.settings import MAX_BULK_PLOTS
from schemas.plot import AreaUnit, Dimensions, Facing, PlotType


def range_error(start_number: int, end_number: int) -> Optional[str]:
    """Why [start_number, end_number] cannot be generated, or None when it can."""
    if end_number < start_number:
        return 'End number must be greater than or equal to start number'
    if end_number - start_number + 1 > MAX_BULK_PLOTS:
        return f'At most {MAX_BULK_PLOTS} plots can be generated at once'
    return None


class BulkNumberingSpec(BaseModel):
    block_id: str = Field(..., min_length=1, description="Block the generated plots belong to")
    prefix: str = Field(default="", max_length=20, examples=["A-"])
    suffix: str = Field(default="", max_length=20, examples=["-E"])
    start_number: int = Field(..., ge=1, description="First number in the range", examples=[1])
    end_number: int = Field(..., ge=1, description="Last number in the range (inclusive)", examples=[120])
    digits: int = Field(default=1, ge=1, le=10, description="Zero-pad width", examples=[3])
    area: float = Field(..., gt=0)
    area_unit: AreaUnit
    price_per_unit: float = Field(..., gt=0)
    facing: Facing = Field(default=Facing.NORTH)
    plot_type: PlotType = Field(default=PlotType.REGULAR)
    dimensions: Optional[Dimensions] = None

    @field_validator('prefix', 'suffix', mode='before')
    @classmethod
    def none_as_empty(cls, v):
        return "" if v is None else v

    @field_validator('digits', mode='before')
    @classmethod
    def default_digits(cls, v):
        return 1 if v is None else v

    @field_validator('end_number')
    @classmethod
    def validate_end_number(cls, v, info):
        """End number must not be below the start number nor make the range too large"""
        start = info.data.get('start_number')
        if start is not None:
            error = range_error(start, v)
            if error:
                raise ValueError(error)
        return v

    @property
    def count(self) -> int:
        return self.end_number - self.start_number + 1
