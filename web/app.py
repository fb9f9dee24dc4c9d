"""FastAPI surface for the resilient transaction execution pipeline."""

from __future__ import annotations

import logging
import threading
from typing import Dict, Optional, Union

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from execution_adapter.ethereum.adapter import AdapterError, build_request
from execution_controller.config import get_settings
from execution_controller.context import ExecutionContext, build_context
from execution_controller.controller import DegradationController
from network.health import online_endpoints, probe
from wallet_core.signer import SignerUnavailableError

LOGGER = logging.getLogger("movemint.web")

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

app = FastAPI(title="MoveMint Execution", description="Resilient EVM transaction execution")

_STATE: Dict[str, Optional[DegradationController]] = {"controller": None}
_STATE_LOCK = threading.Lock()


class ExecuteTransactionRequest(BaseModel):
    to: Optional[str] = None
    data: Optional[str] = None
    value: Optional[Union[str, int, float]] = None
    gasLimit: Optional[Union[str, int]] = None


async def _handle_errors(request: Request, exc: Exception):
    return JSONResponse({"success": False, "error": str(exc)}, status_code=400)


async def _handle_configuration(request: Request, exc: Exception):
    LOGGER.error("signer unavailable: %s", exc)
    return JSONResponse(
        {"success": False, "error": f"Server configuration error: {exc}"},
        status_code=500,
    )


for _exc_class in (AdapterError, ValueError):
    app.add_exception_handler(_exc_class, _handle_errors)
app.add_exception_handler(SignerUnavailableError, _handle_configuration)


@app.post("/execute-transaction")
def execute_transaction(payload: ExecuteTransactionRequest):
    controller = _controller()
    context = controller.context
    settings = context.settings

    request = build_request(
        payload.to,
        payload.data,
        value=payload.value,
        gas_limit=payload.gasLimit,
        fallback_addresses=settings.fallback_addresses_for(payload.to) if payload.to else (),
        required_selectors=settings.required_selectors,
    )
    LOGGER.info("execute to=%s candidates=%s", request.to, len(request.candidate_addresses))

    result = controller.execute(request)
    wallet = context.signer.address if context.signer else None
    status_code, body = result.http_response(wallet)
    return JSONResponse(body, status_code=status_code)


@app.get("/execute-transaction")
def execute_transaction_status():
    context = _controller().context
    settings = context.settings
    return {
        "configured": context.signer is not None,
        "signerAddress": context.signer.address if context.signer else None,
        "signerError": context.signer_error,
        "chainId": settings.chain_id,
        "explorerUrl": settings.explorer_url or None,
        "endpoints": [{"name": name, "url": url} for name, url in settings.rpc_endpoints],
        "contracts": [{"label": label, "address": address} for label, address in settings.contract_addresses],
        "demonstrationEnabled": settings.demonstration_enabled,
        "usage": {
            "method": "POST",
            "body": {
                "to": "0x... (contract address)",
                "data": "0x... (encoded call data)",
                "value": "0 (ether, optional)",
                "gasLimit": "800000 (optional)",
            },
        },
    }


@app.get("/health")
def health():
    context = _controller().context
    settings = context.settings
    endpoints = probe(
        settings.endpoints(),
        settings.chain_id,
        context.client_factory,
        max_workers=settings.probe_workers,
        timeout=settings.rpc_timeout_seconds,
    )
    online = online_endpoints(endpoints)
    if endpoints and len(online) == len(endpoints):
        overall = "healthy"
    elif online:
        overall = "degraded"
    else:
        overall = "outage"

    body = {
        "status": overall,
        "chainId": settings.chain_id,
        "selected": online[0].name if online else None,
        "endpoints": [endpoint.to_dict() for endpoint in endpoints],
    }
    return JSONResponse(body, status_code=503 if overall == "outage" else 200)


def configure(context: ExecutionContext) -> None:
    """Install a prepared context, replacing the environment-built one."""
    with _STATE_LOCK:
        _STATE["controller"] = DegradationController(context)


def _controller() -> DegradationController:
    with _STATE_LOCK:
        controller = _STATE["controller"]
        if controller is None:
            settings = get_settings()
            logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)
            context = build_context(settings)
            if context.signer_error:
                LOGGER.warning("signer not usable: %s", context.signer_error)
            controller = DegradationController(context)
            _STATE["controller"] = controller
        return controller


def _reset_state() -> None:
    with _STATE_LOCK:
        _STATE["controller"] = None
    get_settings.cache_clear()
