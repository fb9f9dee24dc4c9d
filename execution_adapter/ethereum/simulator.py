"""Synthesize a clearly labelled demonstration record without network calls."""

from typing import Iterable, Optional
import hashlib

from contracts.models import selector_of

from .adapter import validate_request
from .models import DemonstrationRecord, ExecutionAttempt, TransactionRequest


def demonstrate(
    request: TransactionRequest,
    chain_id: int,
    reason: str,
    signer_address: Optional[str] = None,
    attempts: Iterable[ExecutionAttempt] = (),
) -> DemonstrationRecord:
    """Describe what production execution would do.

    The identifier is derived from the request alone, so the same request
    always yields the same identifier. It is not a transaction hash and has no
    explorer link.
    """
    validate_request(request)
    attempts = tuple(attempts)
    digest = hashlib.sha256(
        f"{request.to.lower()}|{request.data.lower()}|{request.value_wei}|{chain_id}".encode("ascii")
    ).hexdigest()
    sender = signer_address or "the configured minting wallet"

    explanation = {
        "summary": "No live endpoint and contract pair could execute this transaction. Nothing was broadcast.",
        "reason": reason,
        "verifiable": False,
        "wouldExecute": {
            "from": signer_address,
            "to": request.to,
            "selector": selector_of(request.data),
            "valueWei": str(request.value_wei),
            "gasLimit": request.gas_limit,
            "chainId": chain_id,
        },
        "production": (
            f"In production the call is signed by {sender}, broadcast to chain {chain_id}, "
            "and confirmed on-chain; the response then carries the transaction hash, "
            "block number, gas used and an explorer link."
        ),
        "attemptsTried": len(attempts),
    }
    return DemonstrationRecord(
        demonstration_id=f"demo-{digest[:32]}",
        explanation=explanation,
        notes=("Demonstration only; no transaction was signed or sent.",),
    )
