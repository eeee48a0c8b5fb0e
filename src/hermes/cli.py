"""Command line utilities for operators."""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Any, Sequence

import httpx
import msgspec
from msgspec import structs

from .client import InstanceApiClient
from .config import GatewayConfig
from .exceptions import ConfigurationError
from .instances import InstanceRef, StaticInstance
from .results import CallResult, Err
from .serialization import json_decode, json_encode
from .tokens import DEFAULT_SIGNATURE_METHOD, TokenGenerator

PROGRAM_NAME = "hermes"


def main(argv: Sequence[str] | None = None, *, transport: httpx.AsyncBaseTransport | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    try:
        return args.func(args, transport)
    except ConfigurationError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=PROGRAM_NAME, description="Console to instance gateway commands")
    sub = parser.add_subparsers(dest="command", required=True)

    token = sub.add_parser("token", help="Print the console token for an instance")
    token.add_argument("cluster", help="Cluster identifier")
    token.add_argument("instance", help="Instance identifier")
    token.add_argument("--algorithm", default=None, help=f"Hash algorithm (default {DEFAULT_SIGNATURE_METHOD})")
    token.set_defaults(func=_cmd_token)

    call = sub.add_parser("call", help="Issue one authenticated request to an instance")
    call.add_argument("path", help="Path relative to the instance resource URI")
    call.add_argument("--endpoint", required=True, help="Provisioned endpoint, e.g. https://acme.example.com")
    call.add_argument("--resource-uri", default="/api/v2", help="Resource URI prefix")
    call.add_argument("--cluster", required=True, help="Cluster identifier")
    call.add_argument("--instance", required=True, help="Instance identifier")
    call.add_argument("--method", default="GET", help="HTTP method")
    call.add_argument("--data", default=None, help="JSON payload")
    call.set_defaults(func=_cmd_call)

    return parser


def _cmd_token(args: argparse.Namespace, _transport: httpx.AsyncBaseTransport | None) -> int:
    algorithm = args.algorithm or GatewayConfig.from_env().signature_method
    print(TokenGenerator(algorithm).generate((args.cluster, args.instance)))
    return 0


def _cmd_call(args: argparse.Namespace, transport: httpx.AsyncBaseTransport | None) -> int:
    payload: Any = None
    if args.data is not None:
        try:
            payload = json_decode(args.data)
        except msgspec.DecodeError as exc:
            raise ConfigurationError(f"--data is not valid JSON: {exc}") from exc
    instance = StaticInstance(
        InstanceRef(
            cluster_id=args.cluster,
            instance_id=args.instance,
            provisioned_endpoint=args.endpoint,
            resource_uri=args.resource_uri,
        )
    )
    client = InstanceApiClient(GatewayConfig.from_env(), transport=transport)
    gateway = client.connect(instance)
    result = asyncio.run(gateway.any(args.method, args.path, payload))
    print(_render(result).decode("utf-8"))
    return 1 if isinstance(result, Err) else 0


def _render(result: CallResult) -> bytes:
    return json_encode({"result": type(result).__name__.lower(), **structs.asdict(result)})


__all__ = ["PROGRAM_NAME", "main"]
