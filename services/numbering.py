"""
Bulk numbering generator
Expands a numbering range into one create request per plot number.
"""
from typing import Any, List, Mapping, Union

from schemas.numbering import BulkNumberingSpec, range_error
from schemas.plot import PlotCreate
from services.errors import ValidationError, parse_model
from services.logger import logger


def zero_pad(number: int, digits: int) -> str:
    """Left-pad with zeros to `digits`; never truncates wider numbers."""
    return str(number).zfill(max(digits or 1, 1))


def format_plot_number(number: int, prefix: str = "", suffix: str = "", digits: int = 1) -> str:
    return f"{prefix or ''}{zero_pad(number, digits)}{suffix or ''}"


def generate(spec: Union[BulkNumberingSpec, Mapping[str, Any]]) -> List[PlotCreate]:
    """
    Build the create requests for every number in [start_number, end_number].

    Every plot in one run shares the request's physical attributes and one
    price, area * price_per_unit, computed once for the batch.

    Args:
        spec: BulkNumberingSpec or a mapping with the same fields

    Returns:
        List[PlotCreate]: ascending by number, end - start + 1 items

    Raises:
        ValidationError: bad input; an empty or oversized range is reported on end_number
    """
    spec = parse_model(BulkNumberingSpec, spec)

    error = range_error(spec.start_number, spec.end_number)
    if error:
        raise ValidationError.for_field("end_number", error)

    price = spec.area * spec.price_per_unit

    plots = [
        PlotCreate(
            block_id=spec.block_id,
            plot_number=format_plot_number(i, spec.prefix, spec.suffix, spec.digits),
            area=spec.area,
            area_unit=spec.area_unit,
            price=price,
            price_per_unit=spec.price_per_unit,
            facing=spec.facing,
            plot_type=spec.plot_type,
            dimensions=spec.dimensions.model_copy() if spec.dimensions else None,
        )
        for i in range(spec.start_number, spec.end_number + 1)
    ]

    logger.info(
        f"Generated {len(plots)} plots {plots[0].plot_number} ... {plots[-1].plot_number} "
        f"for block {spec.block_id}"
    )
    return plots
