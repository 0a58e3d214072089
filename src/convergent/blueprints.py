"""Blueprint model: a named, ordered collection of operations."""

from __future__ import annotations

import logging
from collections.abc import Iterator

from pydantic import BaseModel, Field

from .context import Context
from .specop import SpecOp

logger = logging.getLogger(__name__)


class Blueprint(BaseModel):
    """A named collection of operations, run in declaration order."""

    model_config = {"arbitrary_types_allowed": True}

    name: str
    description: str = ""
    ops: list[SpecOp] = Field(default_factory=list)

    def __iter__(self) -> Iterator[SpecOp]:
        return iter(self.ops)

    def __len__(self) -> int:
        return len(self.ops)

    def apply(self, ctx: Context) -> None:
        """Execute all operations in this blueprint."""
        logger.debug("Applying blueprint '%s' (%d operation(s))", self.name, len(self.ops))
        for op in self.ops:
            op(ctx)
