import json
import os as _os
import sys

import httpx
import pytest
from kazoo.exceptions import NoNodeError
from kazoo.protocol.states import EventType, KeeperState, WatchedEvent

# Ensure project root is importable (so `import cli` works reliably across environments)
_project_root = _os.path.dirname(_os.path.dirname(__file__))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from zkd.client import DiscoveryClient  # noqa: E402
from zkd.store import CHILD, Subscription  # noqa: E402


class FakeStore:
    """In-memory ZooKeeper tree with one-shot child watches.

    A watch is armed by ``children(path, watch=True)`` and consumed by
    ``fire_children(path)``, which delivers to every active subscription.
    """

    def __init__(self) -> None:
        self.nodes: dict[str, bytes] = {}
        self.subs: list[Subscription] = []
        self.armed: set[str] = set()
        self.failures: dict[str, Exception] = {}
        self.expiry_handlers = []
        self.connected = False
        self.closed = False

    # tree helpers
    def add(self, path: str, data=b"") -> None:
        parts = path.strip("/").split("/")
        for i in range(1, len(parts)):
            self.nodes.setdefault("/" + "/".join(parts[:i]), b"")
        if not isinstance(data, (bytes, str)):
            data = json.dumps(data)
        self.nodes[path] = data.encode() if isinstance(data, str) else data

    def add_node(self, service: str, node_id: str, address: str, port: int, root: str = "/discovery") -> None:
        self.add(f"{root}/{service}/{node_id}", {"address": address, "port": port})

    def delete(self, path: str) -> None:
        for p in [p for p in self.nodes if p == path or p.startswith(path + "/")]:
            del self.nodes[p]

    # store interface
    def connect(self) -> None:
        self.connected = True

    def exists(self, path: str) -> bool:
        return path in self.nodes

    def register(self, path, callback, kind=CHILD):
        sub = Subscription(path, kind, callback, self.subs.remove)
        self.subs.append(sub)
        return sub

    def children(self, path: str, watch: bool = False) -> list[str]:
        if path in self.failures:
            raise self.failures.pop(path)
        if path not in self.nodes:
            raise NoNodeError(path)
        if watch:
            self.armed.add(path)
        prefix = path.rstrip("/") + "/"
        return [p[len(prefix):] for p in self.nodes if p.startswith(prefix) and "/" not in p[len(prefix):]]

    def get(self, path: str, watch: bool = False) -> bytes:
        if path not in self.nodes:
            raise NoNodeError(path)
        return self.nodes[path]

    def on_expired_session(self, handler) -> None:
        self.expiry_handlers.append(handler)

    def close(self) -> None:
        self.closed = True

    # test controls
    def subscriptions(self, path: str) -> list[Subscription]:
        return [s for s in self.subs if s.path == path]

    def fire_children(self, path: str) -> bool:
        if path not in self.armed:
            return False
        self.armed.discard(path)
        event = WatchedEvent(EventType.CHILD, KeeperState.CONNECTED, path)
        for sub in self.subscriptions(path):
            if sub.kind == CHILD:
                sub.deliver(event)
        return True

    def expire_session(self) -> None:
        self.armed.clear()
        for handler in list(self.expiry_handlers):
            handler()


class StatusServer:
    """Scripted /status responses per host:port, served through httpx.MockTransport.

    A script is a list of status codes or ``None`` (connection refused); the
    last entry repeats once the list is exhausted. Unknown hosts refuse.
    """

    def __init__(self) -> None:
        self.scripts: dict[str, list[int | None]] = {}
        self.requests: list[str] = []
        self.transport = httpx.MockTransport(self._handle)

    def script(self, host: str, port: int, *responses: int | None) -> None:
        self.scripts[f"{host}:{port}"] = list(responses)

    def calls(self, host: str, port: int) -> int:
        return sum(1 for u in self.requests if u.startswith(f"http://{host}:{port}/"))

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(str(request.url))
        script = self.scripts.get(f"{request.url.host}:{request.url.port}", [None])
        status = script.pop(0) if len(script) > 1 else script[0]
        if status is None:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(status, json={"version": "0.1"})


@pytest.fixture
def store():
    s = FakeStore()
    s.add("/discovery")
    return s


@pytest.fixture
def http():
    return StatusServer()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def make_client(store, http, sleeps):
    clients = []

    def _make(**kwargs):
        kwargs.setdefault("store", store)
        client = DiscoveryClient(transport=http.transport, sleep=sleeps.append, **kwargs)
        clients.append(client)
        return client

    yield _make
    for c in clients:
        c.close()
