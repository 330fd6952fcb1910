"""Shared pydantic base for request and response schemas."""

from pydantic import BaseModel, ConfigDict


class BaseSchema(BaseModel):
    """Base schema reading ORM attributes and accepting enum values."""

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)
