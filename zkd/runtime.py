from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from threading import Lock


@dataclass(frozen=True)
class Endpoint:
    name: str  # candidate node id
    uri: str  # http://{address}:{port}/


class Registry:
    """In-memory map of service name -> verified endpoints.

    A service is a key only once a check has completed for it; its list can
    be empty, which means "checked, nothing healthy" rather than "unknown".
    """

    def __init__(self, rng: random.Random | None = None, logger: logging.Logger | None = None) -> None:
        self.lock = Lock()
        self._endpoints: dict[str, list[Endpoint]] = {}
        self._rng = rng or random.Random()
        self.log = logger or logging.getLogger("zkd.registry")

    def set(self, service: str, endpoints: list[Endpoint]) -> None:
        self.log.info("registry set service=%s endpoints=%s", service, [e.uri for e in endpoints])
        with self.lock:
            self._endpoints[service] = list(endpoints)

    def remove(self, service: str) -> bool:
        with self.lock:
            removed = self._endpoints.pop(service, None) is not None
        if removed:
            self.log.info("registry remove service=%s", service)
        return removed

    def endpoints(self, service: str) -> list[Endpoint]:
        with self.lock:
            return list(self._endpoints.get(service, []))

    def random_endpoint(self, service: str) -> str | None:
        """Uniform pick among the known-healthy nodes; None if there are none."""
        with self.lock:
            current = self._endpoints.get(service)
            if not current:
                return None
            return self._rng.choice(current).uri

    def known_services(self) -> set[str]:
        with self.lock:
            return set(self._endpoints)

    def snapshot(self) -> dict[str, list[Endpoint]]:
        with self.lock:
            return {service: list(eps) for service, eps in self._endpoints.items()}

    def coordinator(self) -> str | None:
        return self.random_endpoint("coordinator")

    def overlord(self) -> str | None:
        return self.random_endpoint("overlord")
