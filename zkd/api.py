from __future__ import annotations

from typing import Callable

from fastapi import FastAPI, HTTPException

from .api_models import EndpointModel, RandomEndpoint, ServiceEndpoints
from .client import DiscoveryClient
from .logs import setup_logging
from .settings import settings


def _default_client() -> DiscoveryClient:
    setup_logging(settings.log_level)
    return DiscoveryClient(settings.zk_hosts, settings.discovery_path)


def create_app(
    client: DiscoveryClient | None = None,
    client_factory: Callable[[], DiscoveryClient] = _default_client,
) -> FastAPI:
    """Read-only HTTP view of a discovery registry.

    If no client is given, one is created on startup from the environment
    settings and closed on shutdown.
    """
    app = FastAPI(title="ZooKeeper Service Discovery")
    app.state.client = client
    owns_client = client is None

    @app.on_event("startup")
    def startup() -> None:
        if app.state.client is None:
            app.state.client = client_factory()

    @app.on_event("shutdown")
    def shutdown() -> None:
        if owns_client and app.state.client is not None:
            app.state.client.close()
            app.state.client = None

    def _client() -> DiscoveryClient:
        if app.state.client is None:
            raise HTTPException(status_code=503, detail="Discovery client not started")
        return app.state.client

    def _service_view(dc: DiscoveryClient, service: str) -> ServiceEndpoints:
        return ServiceEndpoints(
            service=service,
            endpoints=[EndpointModel(name=e.name, uri=e.uri) for e in dc.endpoints(service)],
        )

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "healthy"}

    @app.get("/services", response_model=list[ServiceEndpoints])
    def list_services() -> list[ServiceEndpoints]:
        dc = _client()
        return [_service_view(dc, s) for s in sorted(dc.services())]

    @app.get("/services/{service}", response_model=ServiceEndpoints)
    def get_service(service: str) -> ServiceEndpoints:
        dc = _client()
        if service not in dc.services():
            raise HTTPException(status_code=404, detail=f"Unknown service '{service}'")
        return _service_view(dc, service)

    @app.get("/services/{service}/random", response_model=RandomEndpoint)
    def random_endpoint(service: str) -> RandomEndpoint:
        uri = _client().random_node(service)
        if uri is None:
            raise HTTPException(status_code=404, detail=f"No healthy nodes for service '{service}'")
        return RandomEndpoint(service=service, uri=uri)

    return app


app = create_app()
