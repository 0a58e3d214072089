"""Runtime execution context passed to every reconciler call."""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Any

from .provider import ProviderSession, Timeouts
from .retry import poll
from .state import StateStore


class Context[P]:
    """Runtime state passed through the apply chain.

    Holds the provider session (the only shared handle), the tracked state
    store, the dry-run flag and the cancellation signal.
    """

    def __init__(
        self,
        target: P,
        *,
        session: ProviderSession | None = None,
        state: StateStore | None = None,
        variables: dict[str, Any] | None = None,
        dry_run: bool = False,
        cancel: threading.Event | None = None,
        deadline: float | None = None,
    ) -> None:
        self.target = target
        self.session = session or ProviderSession()
        self.state = state if state is not None else StateStore()
        self.variables = variables or {}
        self.dry_run = dry_run
        self.cancel = cancel or threading.Event()
        self.deadline = deadline

    @property
    def timeouts(self) -> Timeouts:
        return self.session.config.timeouts

    def client(self, service: str) -> Any:
        return self.session.client(service)

    def poll[T](
        self,
        fn: Callable[[], T],
        *,
        retry_on: tuple[type[BaseException], ...],
        description: str,
    ) -> T:
        """Retry ``fn`` within the propagation window, honouring cancellation."""
        return poll(
            fn,
            retry_on=retry_on,
            timeout=self.timeouts.propagation,
            cancel=self.cancel,
            deadline=self.deadline,
            base_delay=self.timeouts.poll_interval,
            description=description,
        )
