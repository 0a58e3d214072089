"""HCL loading: render Jinja2, then parse HCL2 into plain dicts."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

import hcl2
import jinja2

if TYPE_CHECKING:
    from .workspace import Workspace

logger = logging.getLogger(__name__)


def scan(
    path: str | Path,
    *,
    recurse: bool = True,
    context: dict[str, Any] | None = None,
) -> Workspace:
    """Scan a directory for .hcl files and return a ready Workspace."""
    from .workspace import Workspace

    ws = Workspace(context=context)
    ws.scan(path, recurse=recurse)
    return ws


def loads(text: str, *, context: dict[str, Any] | None = None, source: str = "<string>") -> dict[str, Any]:
    """Render ``text`` as a Jinja2 template with ``context`` and parse the result."""
    env = jinja2.Environment(
        undefined=jinja2.StrictUndefined,
        keep_trailing_newline=True,
        autoescape=False,
    )
    try:
        text = env.from_string(text).render(context if context is not None else {})
    except jinja2.TemplateError as exc:
        raise ValueError(f"{source}: {exc}") from exc
    try:
        return hcl2.loads(text)
    except Exception as exc:
        # python-hcl2 surfaces lark parse errors without a common base class
        raise ValueError(f"{source}: invalid HCL: {exc}") from exc


def load(file: Path, *, context: dict[str, Any] | None = None) -> dict[str, Any]:
    """Load and parse a single HCL file."""
    logger.debug("Parsing %s", file)
    return loads(file.read_text(), context=context, source=str(file))
