"""
Wire Model Base
===============
Shared pydantic configuration for every model that crosses the HTTP boundary.

Python attributes are snake_case; the JSON wire format is camelCase
(errorId, sanitizedStack, occurrenceCount, ...). Models accept either
spelling on input and must be dumped with ``by_alias=True`` for output.

TolerantWireModel:
    Browser reports are loosely typed. Fields without a default are decoded
    strictly; a field that has a default falls back to it when the submitted
    value does not validate (null, wrong type, unknown enum value).
"""
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        """Dump to a JSON-compatible dict using camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)


class TolerantWireModel(WireModel):

    @field_validator("*", mode="wrap")
    @classmethod
    def _default_on_invalid(cls, value: Any, handler, info: ValidationInfo) -> Any:
        try:
            return handler(value)
        except ValidationError:
            field = cls.model_fields[info.field_name]
            if field.is_required():
                raise
            return field.get_default(call_default_factory=True)
