"""Shared base model for persisted and exported artifacts.

Notebooks, reports and registry entries are written as camelCase JSON
(``keyInsights``, ``monthlyBudget``, ``generatedAt``) so the exported
artifact shapes stay stable. Python code uses the snake_case field names.
"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """BaseModel that reads either naming style and writes camelCase."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_json_dict(self) -> dict:
        """JSON-compatible dict using the persisted (camelCase) field names."""
        return self.model_dump(mode="json", by_alias=True)
