from __future__ import annotations

import argparse
import json
import sys

import requests

from zkd.client import DiscoveryClient, DiscoveryError
from zkd.logs import setup_logging
from zkd.settings import settings


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def _connect(args) -> DiscoveryClient:
    return DiscoveryClient(args.zk, args.discovery_path)


def _via_api(args) -> int:
    base = args.api.rstrip("/")

    if args.cmd == "services":
        _print(requests.get(f"{base}/services", timeout=10).json())
        return 0

    service = args.service if args.cmd == "random" else args.cmd
    r = requests.get(f"{base}/services/{service}/random", timeout=10)
    _print(r.json())
    return 0 if r.ok else 1


def _via_zookeeper(args) -> int:
    try:
        client = _connect(args)
    except DiscoveryError as e:
        _print({"error": str(e)})
        return 1

    with client:
        if args.cmd == "services":
            _print(
                [
                    {"service": s, "endpoints": [{"name": e.name, "uri": e.uri} for e in client.endpoints(s)]}
                    for s in sorted(client.services())
                ]
            )
            return 0

        service = args.service if args.cmd == "random" else args.cmd
        uri = client.random_node(service)
        if uri is None:
            _print({"service": service, "error": "no healthy nodes"})
            return 1
        _print({"service": service, "uri": uri})
        return 0


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="ZooKeeper service discovery CLI")
    p.add_argument("--zk", default=settings.zk_hosts, help="ZooKeeper connection string")
    p.add_argument("--discovery-path", default=settings.discovery_path)
    p.add_argument("--api", default=None, help="Query a running discovery API instead of ZooKeeper")
    p.add_argument("--log-level", default=settings.log_level)
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("services", help="List services and their healthy endpoints")
    sub.add_parser("coordinator", help="Print a random healthy coordinator")
    sub.add_parser("overlord", help="Print a random healthy overlord")

    s_rand = sub.add_parser("random", help="Print a random healthy node of a service")
    s_rand.add_argument("service")

    args = p.parse_args(argv)
    setup_logging(args.log_level)

    if args.api:
        return _via_api(args)
    return _via_zookeeper(args)


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
