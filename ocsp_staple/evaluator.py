from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from cryptography import x509

from .errors import BadSignature, Revoked, UnknownStatus, InvalidStapleStatus, StaleResponse
from .models import CertStatus, StapleResponse, Verdict
from .signature import verify_response_signature


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def check_freshness(response: StapleResponse,
                    now: datetime,
                    max_age_hours: Optional[int] = None,
                    clock_skew_seconds: int = 300) -> None:
    """Raise StaleResponse when thisUpdate/nextUpdate do not cover now"""
    skew = timedelta(seconds=clock_skew_seconds)

    if response.this_update > now + skew:
        raise StaleResponse(f"thisUpdate {response.this_update.isoformat()} is in the future")

    if response.next_update is not None and response.next_update < now - skew:
        raise StaleResponse(f"nextUpdate {response.next_update.isoformat()} has passed")

    if max_age_hours is not None and now - response.this_update > timedelta(hours=max_age_hours) + skew:
        raise StaleResponse(f"thisUpdate {response.this_update.isoformat()} is older than {max_age_hours}h")


def evaluate(response: StapleResponse,
             issuer: x509.Certificate,
             allow_delegated: bool = True,
             freshness: bool = False,
             max_age_hours: Optional[int] = None,
             clock_skew_seconds: int = 300,
             clock: Callable[[], datetime] = utcnow) -> Verdict:
    """
    Check the staple signature, then decide on its status.

    Revoked wins over a bad signature, a bad signature wins over Unknown.
    Only a Good, verified (and, if asked, fresh) staple is accepted.
    """
    signer = None
    signature_error = None
    try:
        signer = verify_response_signature(response, issuer, allow_delegated=allow_delegated)
    except BadSignature as exc:
        signature_error = exc

    verified = signature_error is None

    def reject(error: Exception) -> Verdict:
        return Verdict(
            accepted=False,
            error=error,
            response=response,
            signature_verified=verified,
            signature_error=str(signature_error) if signature_error else None,
            signer=signer,
        )

    if response.status is CertStatus.REVOKED:
        return reject(Revoked(response.revoked_at, response.revocation_reason))
    if signature_error is not None:
        return reject(signature_error)
    if response.status is CertStatus.UNKNOWN:
        return reject(UnknownStatus())
    if response.status is not CertStatus.GOOD:
        return reject(InvalidStapleStatus(response.status))

    if freshness:
        try:
            check_freshness(response, clock(), max_age_hours, clock_skew_seconds)
        except StaleResponse as exc:
            return reject(exc)

    return Verdict(accepted=True, response=response, signature_verified=True, signer=signer)
