from typing import Optional

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.x509.ocsp import (
    OCSPCertStatus,
    OCSPRequestBuilder,
    OCSPResponseStatus,
    load_der_ocsp_response,
)
from asn1crypto import algos as asn1_algos

from .errors import ParseFailure, BindingMismatch, InvalidStapleStatus
from .models import CertStatus, StapleResponse


_STATUS_MAP = {
    OCSPCertStatus.GOOD: CertStatus.GOOD,
    OCSPCertStatus.REVOKED: CertStatus.REVOKED,
    OCSPCertStatus.UNKNOWN: CertStatus.UNKNOWN,
}


def signature_algorithm_name(oid: x509.ObjectIdentifier) -> str:
    # asn1crypto knows friendly names like "sha256_rsa"; unmapped OIDs come back dotted
    return asn1_algos.SignedDigestAlgorithmId(oid.dotted_string).native


def _expected_cert_id(leaf: x509.Certificate, issuer: x509.Certificate, hash_algo: hashes.HashAlgorithm):
    # The request builder computes the CertID hashes exactly as a responder would
    builder = OCSPRequestBuilder().add_certificate(leaf, issuer, hash_algo)
    return builder.build()


def _responder_id(ocsp_resp) -> str:
    if ocsp_resp.responder_name is not None:
        return ocsp_resp.responder_name.rfc4514_string()
    return "key:" + ocsp_resp.responder_key_hash.hex()


def _find_single_response(ocsp_resp, leaf: x509.Certificate, issuer: x509.Certificate):
    serial_seen = False
    for single in ocsp_resp.responses:
        if single.serial_number != leaf.serial_number:
            continue
        serial_seen = True
        try:
            expected = _expected_cert_id(leaf, issuer, single.hash_algorithm)
        except (ValueError, UnsupportedAlgorithm) as exc:
            raise ParseFailure(f"unsupported CertID hash algorithm: {exc}")
        if (single.issuer_name_hash == expected.issuer_name_hash
                and single.issuer_key_hash == expected.issuer_key_hash):
            return single

    if serial_seen:
        raise BindingMismatch("issuer name/key hash does not match the supplied issuer")
    raise BindingMismatch(f"no response matching certificate serial {leaf.serial_number:x}")


def parse_staple(raw: Optional[bytes], leaf: x509.Certificate, issuer: x509.Certificate) -> StapleResponse:
    """
    Decode a stapled OCSP response and bind it to leaf/issuer.

    Raises ParseFailure for empty, malformed or unsuccessful responses and
    BindingMismatch when the staple speaks about a different certificate.
    """
    if not raw:
        raise ParseFailure("no OCSP staple attached to the handshake")

    try:
        ocsp_resp = load_der_ocsp_response(bytes(raw))
    except ValueError as exc:
        raise ParseFailure(str(exc))

    if ocsp_resp.response_status != OCSPResponseStatus.SUCCESSFUL:
        raise ParseFailure(f"responder returned {ocsp_resp.response_status.name}")

    single = _find_single_response(ocsp_resp, leaf, issuer)

    status = _STATUS_MAP.get(single.certificate_status)
    if status is None:
        raise InvalidStapleStatus(single.certificate_status)

    revoked_at = None
    reason = None
    if status is CertStatus.REVOKED:
        revoked_at = single.revocation_time_utc
        if single.revocation_reason is not None:
            reason = single.revocation_reason.name

    return StapleResponse(
        status=status,
        produced_at=ocsp_resp.produced_at_utc,
        this_update=single.this_update_utc,
        next_update=single.next_update_utc,
        revoked_at=revoked_at,
        revocation_reason=reason,
        signature_algorithm=signature_algorithm_name(ocsp_resp.signature_algorithm_oid),
        serial_number=single.serial_number,
        hash_algorithm=single.hash_algorithm.name,
        responder_id=_responder_id(ocsp_resp),
        ocsp=ocsp_resp,
        raw_der=bytes(raw),
    )
