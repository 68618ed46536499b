"""
Domain errors for the plot inventory core

ValidationError  - field scoped, raised before anything is sent to the store
NotFoundError    - a referenced plot / block / canvas node does not exist
TransportError   - the persistence boundary failed; opaque to the core
"""
from typing import Any, Dict, Mapping, Optional, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)


class PlotInventoryError(Exception):
    """Base class for every error the core reports."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(PlotInventoryError):
    """
    One or more fields failed validation.

    field_errors maps a field name (nested fields joined with ".") to a
    human readable message so callers can render feedback next to each field.
    """

    def __init__(self, field_errors: Dict[str, str], message: Optional[str] = None):
        self.field_errors = dict(field_errors)
        if message is None:
            message = "; ".join(f"{k}: {v}" for k, v in self.field_errors.items()) or "Invalid input"
        super().__init__(message)

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls({field: message})

    @property
    def field(self) -> Optional[str]:
        """First offending field, handy when only one is expected."""
        return next(iter(self.field_errors), None)

    @classmethod
    def from_pydantic(cls, exc: PydanticValidationError, prefix: Optional[str] = None) -> "ValidationError":
        field_errors: Dict[str, str] = {}
        for err in exc.errors():
            loc = ".".join(str(part) for part in err.get("loc", ())) or "__root__"
            if prefix:
                loc = f"{prefix}.{loc}"
            # keep the first message per field
            field_errors.setdefault(loc, err.get("msg", "Invalid value"))
        return cls(field_errors)


class InvalidTransitionError(ValidationError):
    """The transition table does not allow moving between these statuses."""

    def __init__(self, current: str, requested: str, field: str = "status"):
        super().__init__({field: f"Cannot change status from {current} to {requested}"})
        self.current = current
        self.requested = requested


class NotFoundError(PlotInventoryError):
    def __init__(self, resource: str, identifier: Any):
        super().__init__(f"{resource} {identifier} not found")
        self.resource = resource
        self.identifier = identifier


class TransportError(PlotInventoryError):
    """A call to the persistence boundary failed."""

    def __init__(self, operation: str, detail: str):
        super().__init__(f"{operation} failed: {detail}")
        self.operation = operation
        self.detail = detail


def parse_model(model: Type[ModelT], data: Any, prefix: Optional[str] = None) -> ModelT:
    """Validate data into model, reporting failures as a field scoped ValidationError."""
    if isinstance(data, model):
        return data
    if isinstance(data, BaseModel):
        data = data.model_dump()
    if not isinstance(data, Mapping):
        raise ValidationError({prefix or "__root__": f"Expected an object, got {type(data).__name__}"})
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError.from_pydantic(exc, prefix=prefix) from exc
