"""Pydantic request schemas for the public API.

The canonical per-tx payload rules live in tx/tx_canon.yaml and are enforced
at admission; these models only shape-check the HTTP body.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class TxSubmitRequest(BaseModel):
    tx_type: str = Field(..., description="Canon tx name, e.g. ALLOCATE")
    signer: str = Field(..., description="Account id of the signer")
    nonce: int = Field(..., description="Next account nonce (last used + 1)")
    payload: Dict[str, Any] = Field(default_factory=dict, description="Flat tx payload")
    sig: str = Field(default="", description="Ed25519 signature (hex or base64)")
    pubkey: Optional[str] = Field(default=None, description="Signer pubkey; only needed for ACCOUNT_REGISTER")

    # Unknown fields are forwarded to admission, which decides what to do with them.
    model_config = {"extra": "allow"}
