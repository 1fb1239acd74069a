"""Abstract tool interface for Claude tool use."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

from starbase.errors import ToolError


class NoArgs(BaseModel):
    model_config = ConfigDict(extra="ignore")


class Tool(ABC):
    """Base class for all Claude-callable tools.

    Arguments are declared as a pydantic model on ``args_model``; the model
    doubles as the JSON schema advertised to Claude and as the validator
    applied before ``execute`` runs.
    """

    args_model: type[BaseModel] = NoArgs

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique tool name sent to the Anthropic API."""
        ...

    @property
    @abstractmethod
    def description(self) -> str:
        """Human-readable description for Claude."""
        ...

    @property
    def input_schema(self) -> dict[str, Any]:
        schema = self.args_model.model_json_schema()
        schema.pop("title", None)
        schema.setdefault("properties", {})
        return schema

    def parse_args(self, raw: dict[str, Any]) -> BaseModel:
        try:
            return self.args_model.model_validate(raw or {})
        except PydanticValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'input'}: {err['msg']}" for err in e.errors()
            )
            raise ToolError(f"Invalid arguments for {self.name}: {problems}") from e

    @abstractmethod
    async def execute(self, args: Any, user_id: str) -> Any:
        """Run the tool for ``user_id`` and return JSON-serializable data."""
        ...

    def to_api_dict(self) -> dict[str, Any]:
        """Serialize to the Anthropic API tool definition format."""
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema,
        }
