"""Turning pydantic validation failures into domain errors."""

from typing import Any, Mapping, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError as PydanticValidationError

from .errors import ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)


def describe_validation_error(error: PydanticValidationError) -> str:
    """Flatten a pydantic validation error into one human-readable line."""
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ()) if part != "body") or "input"
        parts.append(f"{location}: {item.get('msg')}")
    return "; ".join(parts)


def coerce(model: Type[ModelT], fields: Union[ModelT, Mapping[str, Any]]) -> ModelT:
    """Validate raw input into ``model``, reporting problems as ``ValidationError``."""
    if isinstance(fields, model):
        return fields
    try:
        return model.model_validate(fields)
    except PydanticValidationError as e:
        raise ValidationError(describe_validation_error(e)) from e
