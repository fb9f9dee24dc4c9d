"""Operator CLI for endpoint discovery, contract checks and manual execution."""

from __future__ import annotations

import argparse
import json
import logging
import sys
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional

from web3 import Web3

from contracts.models import normalize_selector
from execution_adapter.ethereum.adapter import AdapterError, build_request
from execution_controller.config import get_settings
from execution_controller.context import ExecutionContext, build_context
from execution_controller.controller import DegradationController, PipelineCancelledError
from failures.classifier import classify
from network.health import NetworkOutageError, probe, select_endpoint
from wallet_core.signer import SignerUnavailableError

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def main(argv: Optional[List[str]] = None, context: Optional[ExecutionContext] = None) -> int:
    parser = argparse.ArgumentParser(prog="movemint")
    parser.add_argument("--log-level", default=None)
    subparsers = parser.add_subparsers(dest="command", required=True)

    probe_parser = subparsers.add_parser("probe")
    probe_parser.set_defaults(func=_probe)

    resolve_parser = subparsers.add_parser("resolve")
    resolve_parser.add_argument("--address", action="append", default=[])
    resolve_parser.add_argument("--selector", action="append", default=[])
    resolve_parser.set_defaults(func=_resolve)

    balance_parser = subparsers.add_parser("balance")
    balance_parser.set_defaults(func=_balance)

    execute_parser = subparsers.add_parser("execute")
    execute_parser.add_argument("--to", required=True)
    execute_parser.add_argument("--data", required=True)
    execute_parser.add_argument("--value", default=None)
    execute_parser.add_argument("--gas-limit", default=None)
    execute_parser.set_defaults(func=_execute)

    args = parser.parse_args(argv)

    try:
        if context is None:
            settings = get_settings()
            logging.basicConfig(level=(args.log_level or settings.log_level).upper(), format=LOG_FORMAT)
            context = build_context(settings)
        return args.func(args, context)
    except (ValueError, AdapterError, SignerUnavailableError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 2
    except NetworkOutageError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1


def _probe(args: argparse.Namespace, context: ExecutionContext) -> int:
    endpoints = _probe_all(context)
    online = [endpoint for endpoint in endpoints if endpoint.online]
    print(
        json.dumps(
            {
                "chainId": context.settings.chain_id,
                "selected": online[0].name if online else None,
                "endpoints": [endpoint.to_dict() for endpoint in endpoints],
            },
            indent=2,
        )
    )
    return 0 if online else 1


def _resolve(args: argparse.Namespace, context: ExecutionContext) -> int:
    settings = context.settings
    addresses = args.address or [address for _, address in settings.contract_addresses]
    if not addresses:
        raise ValueError("No addresses given and MINT_CONTRACT_ADDRESSES is empty.")
    selectors = [normalize_selector(value) for value in list(settings.required_selectors) + args.selector]

    endpoint = select_endpoint(_probe_all(context))
    client = context.client_factory(endpoint)
    caller = context.signer.address if context.signer else None

    rows = []
    for address in addresses:
        try:
            target = context.resolver.resolve(
                endpoint,
                client,
                address,
                selectors,
                label=settings.contract_label(address),
                caller_address=caller,
            )
        except Exception as exc:
            error = classify(exc)
            rows.append({"address": address, "resolved": False, "kind": error.kind.value, "detail": error.raw_message})
        else:
            rows.append({"address": address, "resolved": True, "target": target.to_dict()})

    print(json.dumps({"endpoint": endpoint.name, "selectors": selectors, "contracts": rows}, indent=2))
    return 0 if any(row["resolved"] for row in rows) else 1


def _balance(args: argparse.Namespace, context: ExecutionContext) -> int:
    if context.signer is None:
        raise SignerUnavailableError(context.signer_error or "Signer private key is not configured.")
    endpoint = select_endpoint(_probe_all(context))
    balance = context.client_factory(endpoint).get_balance(context.signer.address)
    print(
        json.dumps(
            {
                "endpoint": endpoint.name,
                "address": context.signer.address,
                "balanceWei": str(balance),
                "balance": str(Web3.from_wei(balance, "ether")),
            },
            indent=2,
        )
    )
    return 0 if balance > 0 else 1


def _execute(args: argparse.Namespace, context: ExecutionContext) -> int:
    settings = context.settings
    request = build_request(
        args.to,
        args.data,
        value=args.value,
        gas_limit=args.gas_limit,
        fallback_addresses=settings.fallback_addresses_for(args.to),
        required_selectors=settings.required_selectors,
    )
    controller = DegradationController(context)
    cancel = threading.Event()

    with ThreadPoolExecutor(max_workers=1, thread_name_prefix="pipeline") as pool:
        future = pool.submit(controller.execute, request, cancel)
        try:
            try:
                result = future.result()
            except KeyboardInterrupt:
                cancel.set()
                print("Cancelling after the current step...", file=sys.stderr)
                result = future.result()
        except PipelineCancelledError as exc:
            print(f"ERROR: {exc}", file=sys.stderr)
            return 130

    wallet = context.signer.address if context.signer else None
    status_code, body = result.http_response(wallet)
    body["httpStatus"] = status_code
    print(json.dumps(body, indent=2))
    return 0 if result.success else 1


def _probe_all(context: ExecutionContext):
    settings = context.settings
    return probe(
        settings.endpoints(),
        settings.chain_id,
        context.client_factory,
        max_workers=settings.probe_workers,
        timeout=settings.rpc_timeout_seconds,
    )
