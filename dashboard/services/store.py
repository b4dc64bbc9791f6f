"""
Store — the single owner of canonical state.

Every source (snapshot responses, push events, action outcomes, UI intents)
changes state only through `dispatch`, which runs the pure reducer to
completion before returning. There are no awaits inside dispatch, so on one
event loop two dispatches never interleave.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from reconciler.kernel.reducer import empty_state, reduce
from reconciler.kernel.types import Action, ReduceResult

logger = logging.getLogger(__name__)

# Rejections that are part of normal operation, not signs of a bad payload.
_EXPECTED_REJECTIONS = {"STALE_RESPONSE", "NOT_FOUND", "FILTERED_OUT", "DUPLICATE"}

Listener = Callable[[dict[str, Any], Action], None]


class Store:
    """Holds the current state and applies actions to it."""

    def __init__(self, kind: str = "return", state: dict[str, Any] | None = None):
        self._state = state if state is not None else empty_state(kind)
        self._listeners: list[Listener] = []

    @property
    def state(self) -> dict[str, Any]:
        return self._state

    @property
    def kind(self) -> str:
        return self._state["kind"]

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener called after every accepted action. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def dispatch(self, action: Action) -> ReduceResult:
        result = reduce(self._state, action)
        if not result.accepted:
            if result.code in _EXPECTED_REJECTIONS:
                logger.info("store: %s ignored (%s)", action.type, result.reason)
            else:
                logger.warning("store: %s rejected (%s)", action.type, result.reason)
            return result

        self._state = result.state
        for listener in list(self._listeners):
            listener(self._state, action)
        return result
