from __future__ import annotations

import logging
from threading import Lock
from typing import Any, Callable

from .store import CHILD, Subscription


class WatchTable:
    """At most one child-change subscription per service.

    Watches are not re-armed here: whoever handles a fire decides whether to
    unwatch and watch again.
    """

    def __init__(self, store, discovery_path: str = "/discovery", logger: logging.Logger | None = None) -> None:
        self.store = store
        self.discovery_path = discovery_path.rstrip("/") or "/"
        self.log = logger or logging.getLogger("zkd.watches")
        self._lock = Lock()
        self._handles: dict[str, Subscription] = {}

    def path(self, service: str) -> str:
        return f"{self.discovery_path.rstrip('/')}/{service}"

    def is_watched(self, service: str) -> bool:
        with self._lock:
            return service in self._handles

    def watched(self) -> set[str]:
        with self._lock:
            return set(self._handles)

    def watch(self, service: str, on_fire: Callable[[str, Any], None]) -> bool:
        """Subscribe to child changes of the service path.

        Returns False (and registers nothing) if the service already has a
        subscription.
        """
        with self._lock:
            if service in self._handles:
                return False
            self.log.info("watch service=%s", service)
            self._handles[service] = self.store.register(
                self.path(service), lambda event: on_fire(service, event), kind=CHILD
            )
            return True

    def unwatch(self, service: str) -> bool:
        with self._lock:
            handle = self._handles.pop(service, None)
        if handle is None:
            return False
        self.log.info("unwatch service=%s", service)
        handle.unregister()
        return True

    def clear(self) -> None:
        with self._lock:
            handles = list(self._handles.values())
            self._handles.clear()
        for handle in handles:
            handle.unregister()
