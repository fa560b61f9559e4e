"""ZooKeeper discovery client for Druid cluster services.

Keeps a live, in-process registry of healthy coordinator and overlord nodes:
 - watches the discovery path and each service path in ZooKeeper
 - health-checks every announced node (GET /status) before exposing it
 - hands out a random healthy endpoint per service
"""
from __future__ import annotations

from .client import DiscoveryClient, DiscoveryError, DiscoveryPathMissing
from .runtime import Endpoint, Registry

__all__ = [
    "DiscoveryClient",
    "DiscoveryError",
    "DiscoveryPathMissing",
    "Endpoint",
    "Registry",
]
