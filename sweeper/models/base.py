"""JsonModel base class for API communication."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class JsonModel(BaseModel):
    """Base model with camelCase JSON and snake_case attributes.

    The UI collaborator speaks camelCase (``profileId``, ``nextRun``), Python
    code uses snake_case. Both spellings are accepted on input.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def model_dump_json(self, **kwargs) -> str:
        """Serialize with camelCase keys unless told otherwise."""
        kwargs.setdefault("by_alias", True)
        return super().model_dump_json(**kwargs)

    def to_json(self, pretty: bool = False) -> str:
        """Serialize to a JSON string, dropping None values."""
        return self.model_dump_json(indent=2 if pretty else None, exclude_none=True)

    def to_dict(self, mode: Literal["json", "python"] = "python") -> dict[str, Any]:
        """Convert to a dict; ``json`` mode also switches to camelCase keys."""
        return self.model_dump(by_alias=mode == "json", mode=mode)
