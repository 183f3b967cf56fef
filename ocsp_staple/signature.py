"""
OCSP response signature verification

The response is accepted as signed by the issuer when either the issuer key
verifies tbsResponseData directly, or a delegated responder certificate
embedded in the staple does so (RFC 6960 section 4.2.2.2): the delegate must
be issued directly by the issuer and carry the id-kp-OCSPSigning EKU.
"""

from typing import Optional

from cryptography import x509
from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa, ec, dsa, ed25519, ed448
from cryptography.x509.oid import ExtendedKeyUsageOID, SignatureAlgorithmOID
from asn1crypto import ocsp as asn1_ocsp

from .errors import BadSignature
from .models import StapleResponse


SIGNER_ISSUER = "issuer"
SIGNER_DELEGATED = "delegated"

# Hash names as asn1crypto reports them in RSASSA-PSS parameters
_PSS_HASHES = {
    "sha1": hashes.SHA1,
    "sha224": hashes.SHA224,
    "sha256": hashes.SHA256,
    "sha384": hashes.SHA384,
    "sha512": hashes.SHA512,
}


def _pss_padding(raw_der: bytes):
    basic = asn1_ocsp.OCSPResponse.load(raw_der)["response_bytes"]["response"].parsed
    params = basic["signature_algorithm"]["parameters"]
    hash_name = params["hash_algorithm"]["algorithm"].native
    mgf_hash_name = params["mask_gen_algorithm"]["parameters"]["algorithm"].native
    if hash_name not in _PSS_HASHES or mgf_hash_name not in _PSS_HASHES:
        raise BadSignature(f"unsupported RSASSA-PSS hash {hash_name}/{mgf_hash_name}")
    hash_algo = _PSS_HASHES[hash_name]()
    pss = padding.PSS(
        mgf=padding.MGF1(_PSS_HASHES[mgf_hash_name]()),
        salt_length=params["salt_length"].native,
    )
    return pss, hash_algo


def verify_with_key(public_key, response: StapleResponse) -> None:
    """Verify tbsResponseData with public_key; raises InvalidSignature or BadSignature"""
    ocsp_resp = response.ocsp
    signature = ocsp_resp.signature
    data = ocsp_resp.tbs_response_bytes

    if isinstance(public_key, (ed25519.Ed25519PublicKey, ed448.Ed448PublicKey)):
        public_key.verify(signature, data)
        return

    if isinstance(public_key, rsa.RSAPublicKey) and ocsp_resp.signature_algorithm_oid == SignatureAlgorithmOID.RSASSA_PSS:
        pss, hash_algo = _pss_padding(response.raw_der)
        public_key.verify(signature, data, pss, hash_algo)
        return

    try:
        hash_algo = ocsp_resp.signature_hash_algorithm
    except UnsupportedAlgorithm as exc:
        raise BadSignature(f"unsupported signature algorithm {response.signature_algorithm}: {exc}")
    if hash_algo is None:
        raise BadSignature(f"signature algorithm {response.signature_algorithm} carries no hash")

    if isinstance(public_key, rsa.RSAPublicKey):
        public_key.verify(signature, data, padding.PKCS1v15(), hash_algo)
    elif isinstance(public_key, ec.EllipticCurvePublicKey):
        public_key.verify(signature, data, ec.ECDSA(hash_algo))
    elif isinstance(public_key, dsa.DSAPublicKey):
        public_key.verify(signature, data, hash_algo)
    else:
        raise BadSignature(f"unsupported public key type {type(public_key).__name__}")


def _responder_matches(cert: x509.Certificate, response: StapleResponse) -> bool:
    ocsp_resp = response.ocsp
    if ocsp_resp.responder_name is not None:
        return cert.subject == ocsp_resp.responder_name
    key_id = x509.SubjectKeyIdentifier.from_public_key(cert.public_key()).digest
    return key_id == ocsp_resp.responder_key_hash


def _find_delegate(response: StapleResponse) -> Optional[x509.Certificate]:
    for cert in response.ocsp.certificates:
        if _responder_matches(cert, response):
            return cert
    return None


def _check_delegate(delegate: x509.Certificate, issuer: x509.Certificate) -> None:
    try:
        delegate.verify_directly_issued_by(issuer)
    except (ValueError, TypeError, InvalidSignature) as exc:
        raise BadSignature(f"responder certificate {delegate.subject.rfc4514_string()} not issued by the issuer: {str(exc) or type(exc).__name__}")

    try:
        eku = delegate.extensions.get_extension_for_class(x509.ExtendedKeyUsage).value
    except x509.ExtensionNotFound:
        raise BadSignature("responder certificate has no extended key usage")
    if ExtendedKeyUsageOID.OCSP_SIGNING not in eku:
        raise BadSignature("responder certificate is not authorized for OCSP signing")


def verify_response_signature(response: StapleResponse, issuer: x509.Certificate, allow_delegated: bool = True) -> str:
    """
    Check that the staple was signed by issuer, directly or through a delegate.

    Returns SIGNER_ISSUER or SIGNER_DELEGATED, raises BadSignature otherwise.
    """
    delegate = None
    if not _responder_matches(issuer, response):
        # A responder ID without a matching embedded cert falls back to the issuer key
        delegate = _find_delegate(response)
        if delegate is not None and not allow_delegated:
            raise BadSignature("response signed by a delegated responder, delegation disabled")

    if delegate is None:
        try:
            verify_with_key(issuer.public_key(), response)
        except InvalidSignature:
            raise BadSignature("signature does not verify with the issuer key")
        except (TypeError, ValueError) as exc:
            raise BadSignature(f"issuer key cannot verify response: {exc}")
        return SIGNER_ISSUER

    _check_delegate(delegate, issuer)
    try:
        verify_with_key(delegate.public_key(), response)
    except InvalidSignature:
        raise BadSignature("signature does not verify with the delegated responder key")
    except (TypeError, ValueError) as exc:
        raise BadSignature(f"responder key cannot verify response: {exc}")
    return SIGNER_DELEGATED
