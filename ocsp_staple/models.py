from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, List, Optional
from datetime import datetime

from cryptography import x509
from cryptography.x509.ocsp import OCSPResponse


class CertStatus(Enum):
    GOOD = "Good"
    REVOKED = "Revoked"
    UNKNOWN = "Unknown"


class ErrorKind(Enum):
    MISSING_CHAIN = "MissingChain"
    INCOMPLETE_CHAIN = "IncompleteChain"
    PARSE_FAILURE = "ParseFailure"
    BINDING_MISMATCH = "BindingMismatch"
    BAD_SIGNATURE = "BadSignature"
    REVOKED = "Revoked"
    UNKNOWN_STATUS = "UnknownStatus"
    INVALID_STAPLE_STATUS = "InvalidStapleStatus"
    STALE_RESPONSE = "StaleResponse"


@dataclass
class HandshakeState:
    """What the TLS layer hands over once the handshake has completed"""
    verified_chains: List[List[x509.Certificate]] = field(default_factory=list)
    ocsp_response: Optional[bytes] = None


@dataclass(frozen=True)
class StapleResponse:
    """Decoded staple, already bound to one leaf/issuer pair"""
    status: CertStatus
    produced_at: datetime
    this_update: datetime
    next_update: Optional[datetime]
    revoked_at: Optional[datetime]
    revocation_reason: Optional[str]
    signature_algorithm: str
    serial_number: int
    hash_algorithm: str
    responder_id: str
    ocsp: OCSPResponse = field(repr=False, compare=False)
    raw_der: bytes = field(repr=False)


@dataclass(frozen=True)
class Verdict:
    accepted: bool
    error: Optional[Exception] = None
    response: Optional[StapleResponse] = None
    signature_verified: bool = False
    signature_error: Optional[str] = None
    signer: Optional[str] = None

    @property
    def reason(self) -> Optional[ErrorKind]:
        if self.error is None:
            return None
        return getattr(self.error, "kind", None)

    def raise_for_reject(self) -> None:
        if not self.accepted:
            raise self.error


@dataclass
class StapleDiagnostic:
    """Flat record of one validator invocation, used for logs and exports"""
    accepted: bool
    error_kind: Optional[str] = None
    error: Optional[str] = None
    status: Optional[str] = None
    revoked_at: Optional[datetime] = None
    revocation_reason: Optional[str] = None
    produced_at: Optional[datetime] = None
    this_update: Optional[datetime] = None
    next_update: Optional[datetime] = None
    signature_verified: Optional[bool] = None
    signer: Optional[str] = None
    response_signature_algorithm: Optional[str] = None
    leaf_signature_algorithm: Optional[str] = None
    issuer_signature_algorithm: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def has_status_block(self) -> bool:
        return self.status is not None
