"""Validation of OCSP responses stapled to TLS handshakes."""

from .errors import (
    StapleError,
    MissingChain,
    IncompleteChain,
    ParseFailure,
    BindingMismatch,
    InvalidStapleStatus,
    BadSignature,
    Revoked,
    UnknownStatus,
    StaleResponse,
    HandshakeError,
)
from .models import CertStatus, ErrorKind, HandshakeState, StapleResponse, Verdict
from .validator import StapleValidator

__version__ = "1.0.0"
