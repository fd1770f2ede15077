__all__ = ["DataModel", "DataModelField", "FrozenDataModel", "SpecModel"]

from typing import Any, Self

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class DataModel(BaseModel):
    """Data model."""

    model_config = ConfigDict(arbitrary_types_allowed=True, extra="ignore")

    def to_dict(self):
        return self.model_dump()

    def to_json(self, indent: int | None = None):
        return self.model_dump_json(indent=indent)

    @classmethod
    def from_dict(cls, obj: dict | None) -> Self:
        return cls.model_validate(obj or {})

    @classmethod
    def from_json(cls, json: str) -> Self:
        return cls.model_validate_json(json)


class FrozenDataModel(DataModel):
    """Data model that cannot be changed after construction."""

    model_config = ConfigDict(
        arbitrary_types_allowed=True,
        extra="ignore",
        frozen=True,
    )


class SpecModel(DataModel):
    """Data model read from an environment manifest.

    Accepts both the camelCase keys used in manifests and the
    snake_case field names.
    """

    model_config = ConfigDict(
        arbitrary_types_allowed=True,
        extra="ignore",
        alias_generator=to_camel,
        populate_by_name=True,
    )


def DataModelField(
    alias: str | None = None,
    exclude: bool | None = None,
    **kwargs,
) -> Any:
    return Field(
        alias=alias,
        exclude=exclude,
        **kwargs,
    )
