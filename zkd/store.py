from __future__ import annotations

import logging
from threading import Lock
from typing import Any, Callable

from kazoo.client import KazooClient, KazooState
from kazoo.protocol.states import Callback, EventType, WatchedEvent

CHILD = "child"
DATA = "data"

_EVENT_KINDS = {
    EventType.CHILD: CHILD,
    EventType.CHANGED: DATA,
    EventType.CREATED: DATA,
    EventType.DELETED: DATA,
}


class Subscription:
    """Handler bound to one path and event kind until unregistered.

    Registering a subscription does not arm anything on the server; the
    ZooKeeper watch itself is one-shot and is armed by a read with
    ``watch=True``. Every event fired for the path reaches every active
    subscription of the matching kind.
    """

    def __init__(self, path: str, kind: str, callback: Callable[[Any], None], on_unregister: Callable[["Subscription"], None]):
        self.path = path
        self.kind = kind
        self.callback = callback
        self.active = True
        self._on_unregister = on_unregister

    def deliver(self, event: Any) -> None:
        if self.active:
            self.callback(event)

    def unregister(self) -> None:
        if not self.active:
            return
        self.active = False
        self._on_unregister(self)


class KazooStore:
    """Coordination store backed by a kazoo ZooKeeper client.

    Watch callbacks and session handlers run on the kazoo callback thread,
    which delivers them one at a time.
    """

    def __init__(
        self,
        hosts: str,
        timeout: float = 10.0,
        client: KazooClient | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.timeout = timeout
        self.log = logger or logging.getLogger("zkd.store")
        self._zk = client if client is not None else KazooClient(hosts=hosts, timeout=timeout)
        self._lock = Lock()
        self._subs: dict[str, list[Subscription]] = {}
        self._expiry_handlers: list[Callable[[], None]] = []
        self._lost = False
        self._zk.add_listener(self._on_state)

    def connect(self) -> None:
        self._zk.start(timeout=self.timeout)

    def exists(self, path: str) -> bool:
        return self._zk.exists(path) is not None

    def register(self, path: str, callback: Callable[[Any], None], kind: str = CHILD) -> Subscription:
        if kind not in (CHILD, DATA):
            raise ValueError(f"Unknown watch kind: {kind!r}")
        sub = Subscription(path, kind, callback, self._drop)
        with self._lock:
            self._subs.setdefault(path, []).append(sub)
        return sub

    def children(self, path: str, watch: bool = False) -> list[str]:
        return self._zk.get_children(path, watch=self._dispatch if watch else None)

    def get(self, path: str, watch: bool = False) -> bytes:
        data, _stat = self._zk.get(path, watch=self._dispatch if watch else None)
        return data

    def on_expired_session(self, handler: Callable[[], None]) -> None:
        with self._lock:
            self._expiry_handlers.append(handler)

    def subscriptions(self, path: str) -> list[Subscription]:
        with self._lock:
            return list(self._subs.get(path, []))

    def close(self) -> None:
        with self._lock:
            subs = [s for lst in self._subs.values() for s in lst]
            self._subs.clear()
        for s in subs:
            s.active = False
        self._zk.stop()
        self._zk.close()

    def _drop(self, sub: Subscription) -> None:
        with self._lock:
            lst = self._subs.get(sub.path, [])
            if sub in lst:
                lst.remove(sub)
            if not lst:
                self._subs.pop(sub.path, None)

    def _dispatch(self, event: WatchedEvent) -> None:
        kind = _EVENT_KINDS.get(event.type)
        if kind is None:
            return
        for sub in self.subscriptions(event.path):
            if sub.kind == kind:
                sub.deliver(event)

    def _on_state(self, state: str) -> None:
        # Runs on the connection thread; blocking work goes to the handler.
        if state == KazooState.LOST:
            self.log.warning("zookeeper session expired")
            self._lost = True
        elif state == KazooState.CONNECTED and self._lost:
            self._lost = False
            with self._lock:
                handlers = list(self._expiry_handlers)
            for handler in handlers:
                # Queued behind watch callbacks so delivery stays serial.
                self._zk.handler.dispatch_callback(Callback("session", handler, ()))
