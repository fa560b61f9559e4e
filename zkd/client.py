from __future__ import annotations

import logging
import time
from threading import Lock
from typing import Callable, Iterable

import httpx

from .health import NodeVerifier
from .runtime import Endpoint, Registry
from .settings import Settings, settings as default_settings
from .store import CHILD, KazooStore, Subscription
from .watcher import ServiceWatcher
from .watches import WatchTable


class DiscoveryError(Exception):
    pass


class DiscoveryPathMissing(DiscoveryError):
    pass


class DiscoveryClient:
    """Live registry of healthy Druid coordinator/overlord nodes.

    On construction the client connects to ZooKeeper, watches the discovery
    path and checks every announced service once before returning. The
    registry is then kept current by watch events; on session expiry the
    whole registration is redone.
    """

    COORDINATOR = "coordinator"
    OVERLORD = "overlord"
    SERVICES = (COORDINATOR, OVERLORD)

    def __init__(
        self,
        connection_uri: str | None = None,
        discovery_path: str | None = None,
        *,
        services: Iterable[str] | None = None,
        store=None,
        verifier: NodeVerifier | None = None,
        settings: Settings | None = None,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
        logger: logging.Logger | None = None,
    ) -> None:
        cfg = settings or default_settings
        self.log = logger or logging.getLogger("zkd")
        self.discovery_path = (discovery_path or cfg.discovery_path).rstrip("/") or "/"
        self.store = store if store is not None else KazooStore(
            connection_uri or cfg.zk_hosts,
            timeout=cfg.zk_timeout_s,
            logger=self.log.getChild("store"),
        )
        self.registry = Registry(logger=self.log.getChild("registry"))
        self.watches = WatchTable(self.store, self.discovery_path, logger=self.log.getChild("watches"))
        self.verifier = verifier or NodeVerifier(
            self.store,
            self.discovery_path,
            connect_timeout_s=cfg.connect_timeout_s,
            read_timeout_s=cfg.read_timeout_s,
            retries=cfg.verify_retries,
            retry_step_s=cfg.retry_step_s,
            transport=transport,
            sleep=sleep,
            logger=self.log.getChild("health"),
        )
        self.watcher = ServiceWatcher(
            self.store,
            self.registry,
            self.watches,
            self.verifier,
            self.discovery_path,
            services=services if services is not None else cfg.services,
            logger=self.log.getChild("watcher"),
        )
        self._lock = Lock()
        self._root: Subscription | None = None
        self._closed = False

        self.store.connect()
        if not self.store.exists(self.discovery_path):
            self.store.close()
            raise DiscoveryPathMissing(f"Discovery path '{self.discovery_path}' does not exist.")
        self.store.on_expired_session(self._on_expired_session)
        self.register()

    def register(self) -> None:
        """Subscribe to the discovery path (once) and check all services."""
        self.log.info("register discovery path %s", self.discovery_path)
        with self._lock:
            if self._closed:
                return
            if self._root is None:
                self._root = self.store.register(self.discovery_path, self.watcher.on_root_event, kind=CHILD)
        self.watcher.check_root()

    def _on_expired_session(self) -> None:
        self.log.warning("session expired, re-registering")
        # Server-side watches died with the old session.
        self.watcher.reset_watches()
        try:
            self.register()
        except Exception:
            self.log.exception("re-registration after session expiry failed")

    def coordinator(self) -> str | None:
        """URI of a random healthy coordinator, or None."""
        return self.registry.random_endpoint(self.COORDINATOR)

    def overlord(self) -> str | None:
        """URI of a random healthy overlord, or None."""
        return self.registry.random_endpoint(self.OVERLORD)

    def random_node(self, service: str) -> str | None:
        return self.registry.random_endpoint(service)

    def services(self) -> set[str]:
        return self.registry.known_services()

    def endpoints(self, service: str) -> list[Endpoint]:
        return self.registry.endpoints(service)

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            root, self._root = self._root, None
        self.log.info("shutting down")
        self.watcher.close()
        if root is not None:
            root.unregister()
        self.store.close()

    def __enter__(self) -> "DiscoveryClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"DiscoveryClient({self.discovery_path!r}, {self.registry.snapshot()!r})"
