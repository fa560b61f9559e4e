from __future__ import annotations

import logging
from threading import RLock
from typing import Any, Iterable

from kazoo.exceptions import KazooException, NoNodeError

from .health import NodeVerifier
from .runtime import Endpoint, Registry
from .watches import WatchTable


class ServiceWatcher:
    """Keeps the registry in line with what ZooKeeper announces.

    Per service the state is either unwatched or watched. ``check_service``
    on an unwatched service arms a watch and does a full scan; on a watched
    one it does nothing. A fired service watch unwatches and checks again,
    which re-arms it.
    """

    def __init__(
        self,
        store,
        registry: Registry,
        watches: WatchTable,
        verifier: NodeVerifier,
        discovery_path: str = "/discovery",
        services: Iterable[str] = ("coordinator", "overlord"),
        logger: logging.Logger | None = None,
    ) -> None:
        self.store = store
        self.registry = registry
        self.watches = watches
        self.verifier = verifier
        self.discovery_path = discovery_path.rstrip("/") or "/"
        self.services = frozenset(services)
        self.log = logger or logging.getLogger("zkd.watcher")
        # Serialises commits to registry + watch table.
        self.lock = RLock()
        self.closed = False

    def watch_path(self, service: str) -> str:
        return self.watches.path(service)

    def check_root(self) -> None:
        self.log.info("checking services under %s", self.discovery_path)
        announced = self.store.children(self.discovery_path, watch=True)
        with self.lock:
            if self.closed:
                return
            gone = (self.registry.known_services() | self.watches.watched()) - set(announced)
            for service in sorted(gone):
                self.unregister_service(service)
        for service in announced:
            self.check_service(service)

    def check_service(self, service: str) -> None:
        if service not in self.services:
            return
        with self.lock:
            if self.closed or not self.watches.watch(service, self.on_service_event):
                return
        try:
            nodes = self.store.children(self.watch_path(service), watch=True)
        except NoNodeError:
            # Service node went away after the root listing; the root watch
            # will report the removal.
            self.log.info("service path vanished service=%s", service)
            self.watches.unwatch(service)
            return
        except KazooException:
            # No watch got armed; drop the handle so the next root event rescans.
            self.log.exception("listing nodes failed service=%s", service)
            self.watches.unwatch(service)
            return
        endpoints: list[Endpoint] = []
        for node_id in nodes:
            endpoint = self.verifier.verify(service, node_id)
            if endpoint is not None:
                endpoints.append(endpoint)
        with self.lock:
            if self.closed or not self.watches.is_watched(service):
                self.log.info("discarding scan result service=%s", service)
                return
            self.registry.set(service, endpoints)

    def unregister_service(self, service: str) -> None:
        with self.lock:
            self.log.info("unregister service=%s", service)
            self.registry.remove(service)
            self.watches.unwatch(service)

    def on_service_event(self, service: str, event: Any) -> None:
        self.log.info("got event on watch path service=%s event=%s", service, event)
        with self.lock:
            self.watches.unwatch(service)
        self.check_service(service)

    def on_root_event(self, event: Any) -> None:
        self.log.info("got event on discovery path event=%s", event)
        try:
            self.check_root()
        except KazooException:
            self.log.exception("root check failed")

    def reset_watches(self) -> None:
        """Forget every service watch; used after the session that held them is gone."""
        with self.lock:
            self.watches.clear()

    def close(self) -> None:
        with self.lock:
            self.closed = True
            self.watches.clear()
