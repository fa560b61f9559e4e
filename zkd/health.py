from __future__ import annotations

import json
import logging
import time
from typing import Callable

import httpx
from kazoo.exceptions import KazooException

from .runtime import Endpoint


class InvalidPayload(Exception):
    pass


def check_status(
    url: str,
    timeout: httpx.Timeout | float = 5.0,
    transport: httpx.BaseTransport | None = None,
) -> tuple[bool, str, float | None]:
    """Call a node's status endpoint.

    Only HTTP 200 counts as healthy; the body is not inspected.
    Returns (is_healthy, message, latency_ms).
    """
    start = time.time()
    try:
        with httpx.Client(timeout=timeout, follow_redirects=False, transport=transport) as client:
            resp = client.get(url)
        latency_ms = round((time.time() - start) * 1000.0, 2)
        if resp.status_code != 200:
            return False, f"HTTP {resp.status_code}", latency_ms
        return True, "Healthy", latency_ms
    except (httpx.ConnectError, httpx.TimeoutException):
        latency_ms = round((time.time() - start) * 1000.0, 2)
        return False, "No response", latency_ms
    except Exception as e:
        latency_ms = round((time.time() - start) * 1000.0, 2)
        return False, f"Error: {type(e).__name__}: {e}", latency_ms


def node_uri(payload: bytes | str | None) -> str:
    """Build ``http://{address}:{port}/`` from an announcement payload."""
    if payload is None:
        raise InvalidPayload("empty payload")
    try:
        node = json.loads(payload)
        address = node["address"]
        port = node["port"]
    except (ValueError, TypeError, KeyError) as e:
        raise InvalidPayload(f"{type(e).__name__}: {e}") from e
    if not isinstance(port, int) or isinstance(port, bool):
        raise InvalidPayload(f"bad port: {port!r}")
    if not isinstance(address, str) or not address:
        raise InvalidPayload(f"bad address: {address!r}")
    return f"http://{address}:{port}/"


class NodeVerifier:
    """Resolves a candidate node and health-checks it with bounded retries.

    A failed attempt (unreadable or malformed payload, network error,
    timeout, non-200) is retried ``retries`` times, sleeping
    ``attempt * retry_step_s`` before each retry. The attempt counter lives
    in the call, so concurrent verifications never share it.
    """

    def __init__(
        self,
        store,
        discovery_path: str = "/discovery",
        *,
        connect_timeout_s: float = 5.0,
        read_timeout_s: float = 5.0,
        retries: int = 3,
        retry_step_s: float = 0.8,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
        logger: logging.Logger | None = None,
    ) -> None:
        self.store = store
        self.discovery_path = discovery_path.rstrip("/")
        self.timeout = httpx.Timeout(read_timeout_s, connect=connect_timeout_s)
        self.retries = max(0, int(retries))
        self.retry_step_s = retry_step_s
        self.transport = transport
        self.sleep = sleep
        self.log = logger or logging.getLogger("zkd.health")

    def node_path(self, service: str, node_id: str) -> str:
        return f"{self.discovery_path}/{service}/{node_id}"

    def attempt(self, service: str, node_id: str) -> tuple[str | None, str]:
        """One verification try. Returns (uri or None, message)."""
        try:
            uri = node_uri(self.store.get(self.node_path(service, node_id)))
        except KazooException as e:
            return None, f"Unreadable node: {type(e).__name__}"
        except InvalidPayload as e:
            return None, f"Invalid payload: {e}"
        ok, msg, _latency = check_status(f"{uri}status", timeout=self.timeout, transport=self.transport)
        return (uri if ok else None), msg

    def verify(self, service: str, node_id: str) -> Endpoint | None:
        self.log.info("verify service=%s node=%s", service, node_id)
        attempt = 0
        while True:
            uri, msg = self.attempt(service, node_id)
            if uri is not None:
                self.log.info("verified service=%s node=%s uri=%s", service, node_id, uri)
                return Endpoint(name=node_id, uri=uri)
            if attempt >= self.retries:
                self.log.info("rejected service=%s node=%s after %d attempts: %s", service, node_id, attempt + 1, msg)
                return None
            attempt += 1
            self.sleep(self.retry_step_s * attempt)
