from __future__ import annotations

from pydantic import BaseModel, Field


class EndpointModel(BaseModel):
    name: str = Field(..., description="Candidate node id under the service path")
    uri: str = Field(..., description="Base URI, e.g. http://10.0.0.1:8081/")


class ServiceEndpoints(BaseModel):
    service: str
    endpoints: list[EndpointModel] = Field(default_factory=list)


class RandomEndpoint(BaseModel):
    service: str
    uri: str
