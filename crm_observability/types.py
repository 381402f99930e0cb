"""Shared pydantic base types."""

from pydantic import BaseModel, ConfigDict


class ConfiguredBaseModel(BaseModel):
    """Base model with enum values stored as plain strings."""

    model_config = ConfigDict(use_enum_values=True, populate_by_name=True)


class FrozenBaseModel(ConfiguredBaseModel):
    """Immutable record; instances cannot be changed after creation."""

    model_config = ConfigDict(use_enum_values=True, populate_by_name=True, frozen=True)
