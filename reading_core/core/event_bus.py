from typing import Any, Awaitable, Callable, Dict, List
import asyncio
import inspect
import logging

logger = logging.getLogger(__name__)

# Topics published by the host app shell
APP_STATE_CHANGED = "app_state_changed"
NETWORK_CHANGED = "network_changed"
LOCALE_CHANGED = "locale_changed"

Handler = Callable[..., Any]


class EventBus:
    """
    Explicit publish/subscribe registry (Observer Pattern).
    Owned by the Container; replaces module-level listener lists.
    """

    def __init__(self):
        # topic -> list of handlers, in subscription order
        self._handlers: Dict[str, List[Handler]] = {}
        self._closed = False

    def subscribe(self, topic: str, handler: Handler) -> Callable[[], None]:
        """Register a handler. Returns the matching unsubscribe callable."""
        if self._closed:
            raise RuntimeError("EventBus is closed")
        self._handlers.setdefault(topic, []).append(handler)

        def unsubscribe():
            handlers = self._handlers.get(topic, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def subscriber_count(self, topic: str) -> int:
        return len(self._handlers.get(topic, []))

    async def publish(self, topic: str, **payload: Any) -> int:
        """
        Deliver payload to every handler of topic, awaiting coroutine handlers.
        A failing handler is logged and does not stop delivery to the rest.
        """
        delivered = 0
        for handler in list(self._handlers.get(topic, [])):
            try:
                result = handler(**payload)
                if inspect.isawaitable(result):
                    await result
                delivered += 1
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("EventBus handler failed", extra={"topic": topic})
        return delivered

    def close(self):
        """Drop every subscription. Further subscribe calls are rejected."""
        self._handlers.clear()
        self._closed = True
