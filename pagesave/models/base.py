"""Base model with common configuration for all pagesave models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel as PydanticBaseModel
from pydantic import ConfigDict
from pydantic.alias_generators import to_camel


class BaseModel(PydanticBaseModel):
    """Base model with common configuration.

    Wire names are camelCase; Python attributes are snake_case and either
    spelling is accepted on input.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_dict(self) -> dict[str, Any]:
        """Convert model to a wire-format dictionary."""
        return self.model_dump(by_alias=True, exclude_none=True)
