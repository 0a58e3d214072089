"""Stack model: the top-level apply target."""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, Field, field_validator

from .blueprints import Blueprint
from .context import Context
from .provider import ProviderConfig, ProviderSession, _single_block
from .state import StateStore

logger = logging.getLogger(__name__)


class Stack(BaseModel):
    """A provider configuration plus the blueprints applied with it."""

    model_config = {"arbitrary_types_allowed": True}

    name: str
    description: str = ""
    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    variables: dict[str, Any] = Field(default_factory=dict)
    blueprints: list[Blueprint] = Field(default_factory=list)

    @field_validator("provider", "variables", mode="before")
    @classmethod
    def _unwrap_block(cls, value: Any) -> Any:
        return _single_block(value)

    def context(self, **kwargs) -> Context[Stack]:
        """Build the context for one run. kwargs are passed to Context."""
        if kwargs.get("session") is None:
            kwargs["session"] = ProviderSession(self.provider)
        variables = {**self.variables, **kwargs.pop("variables", {})}
        return Context(target=self, variables=variables, **kwargs)

    def apply(self, **kwargs) -> StateStore:
        """Apply all blueprints in order; returns the tracked state."""
        ctx = self.context(**kwargs)
        logger.info("Applying stack '%s'", self.name)
        for blueprint in self.blueprints:
            blueprint.apply(ctx)
        return ctx.state
