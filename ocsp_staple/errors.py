"""
Staple validation errors

Every stage of the validator raises one of these; StapleValidator turns them
into a rejecting Verdict. The ``kind`` attribute is what callers should switch on.
"""

from datetime import datetime
from typing import Optional

from .models import ErrorKind


class StapleError(Exception):
    kind: ErrorKind = ErrorKind.PARSE_FAILURE

    def __init__(self, detail: str = ""):
        super().__init__(detail)
        self.detail = detail

    @property
    def is_parse_failure(self) -> bool:
        return self.kind in (ErrorKind.PARSE_FAILURE, ErrorKind.BINDING_MISMATCH)


class MissingChain(StapleError):
    kind = ErrorKind.MISSING_CHAIN

    def __init__(self, detail: str = "missing TLS verified chains"):
        super().__init__(detail)


class IncompleteChain(StapleError):
    kind = ErrorKind.INCOMPLETE_CHAIN

    def __init__(self, got: int, want: int = 2):
        super().__init__(f"incomplete cert chain, got {got}, want at least {want}")
        self.got = got
        self.want = want


class ParseFailure(StapleError):
    kind = ErrorKind.PARSE_FAILURE

    def __init__(self, detail: str):
        super().__init__(f"failed to parse OCSP response: {detail}")


class BindingMismatch(ParseFailure):
    kind = ErrorKind.BINDING_MISMATCH


class InvalidStapleStatus(StapleError):
    kind = ErrorKind.INVALID_STAPLE_STATUS

    def __init__(self, value: object = None):
        super().__init__(f"invalid staple status: {value!r}")
        self.value = value


class BadSignature(StapleError):
    kind = ErrorKind.BAD_SIGNATURE

    def __init__(self, detail: str):
        super().__init__(f"bad OCSP signature: {detail}")


class Revoked(StapleError):
    kind = ErrorKind.REVOKED

    def __init__(self, revoked_at: Optional[datetime], reason: Optional[str] = None):
        msg = f"certificate revoked at {revoked_at.isoformat() if revoked_at else 'unknown time'}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)
        self.revoked_at = revoked_at
        self.reason = reason


class UnknownStatus(StapleError):
    kind = ErrorKind.UNKNOWN_STATUS

    def __init__(self, detail: str = "responder does not know the certificate"):
        super().__init__(detail)


class StaleResponse(StapleError):
    kind = ErrorKind.STALE_RESPONSE


class HandshakeError(Exception):
    """TLS connection could not be established; not a staple verdict"""
