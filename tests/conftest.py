"""
Shared fixtures: a small throwaway PKI and a factory for stapled OCSP responses.
"""
from datetime import datetime, timedelta, timezone

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, rsa
from cryptography.x509 import ocsp
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID


NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)
REVOKED_AT = datetime(2024, 4, 20, 8, 30, 0, tzinfo=timezone.utc)


class Party:
    def __init__(self, cert, key):
        self.cert = cert
        self.key = key

    def write_pem(self, path):
        path.write_bytes(self.cert.public_bytes(serialization.Encoding.PEM))
        return str(path)


def _name(cn):
    return x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, cn)])


def _sign_algo(key):
    if isinstance(key, ed25519.Ed25519PrivateKey):
        return None
    return hashes.SHA256()


def make_cert(cn, key, issuer=None, ca=False, eku=None, san=None):
    now = datetime.now(timezone.utc)
    issuer_name = issuer.cert.subject if issuer else _name(cn)
    signing_key = issuer.key if issuer else key

    builder = (
        x509.CertificateBuilder()
        .subject_name(_name(cn))
        .issuer_name(issuer_name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=365))
        .add_extension(x509.BasicConstraints(ca=ca, path_length=None), critical=True)
    )
    if ca:
        builder = builder.add_extension(
            x509.KeyUsage(
                digital_signature=True, content_commitment=False, key_encipherment=False,
                data_encipherment=False, key_agreement=False, key_cert_sign=True,
                crl_sign=True, encipher_only=False, decipher_only=False,
            ),
            critical=True,
        )
    if eku:
        builder = builder.add_extension(x509.ExtendedKeyUsage(eku), critical=False)
    if san:
        builder = builder.add_extension(x509.SubjectAlternativeName([x509.DNSName(n) for n in san]), critical=False)
    return Party(builder.sign(signing_key, _sign_algo(signing_key)), key)


@pytest.fixture(scope="session")
def ca():
    return make_cert("Test Root CA", rsa.generate_private_key(public_exponent=65537, key_size=2048), ca=True)


@pytest.fixture(scope="session")
def other_ca():
    return make_cert("Other CA", ec.generate_private_key(ec.SECP256R1()), ca=True)


@pytest.fixture(scope="session")
def leaf(ca):
    return make_cert("localhost", ec.generate_private_key(ec.SECP256R1()), issuer=ca, san=["localhost"])


@pytest.fixture(scope="session")
def other_leaf(ca):
    return make_cert("other.example", ec.generate_private_key(ec.SECP256R1()), issuer=ca)


@pytest.fixture(scope="session")
def responder(ca):
    return make_cert("Test OCSP Responder", ec.generate_private_key(ec.SECP256R1()), issuer=ca,
                     eku=[ExtendedKeyUsageOID.OCSP_SIGNING])


@pytest.fixture(scope="session")
def responder_without_eku(ca):
    return make_cert("Plain Signer", ec.generate_private_key(ec.SECP256R1()), issuer=ca,
                     eku=[ExtendedKeyUsageOID.SERVER_AUTH])


@pytest.fixture(scope="session")
def foreign_responder(other_ca):
    return make_cert("Foreign OCSP Responder", ec.generate_private_key(ec.SECP256R1()), issuer=other_ca,
                     eku=[ExtendedKeyUsageOID.OCSP_SIGNING])


def build_staple(cert, issuer, signer, status=ocsp.OCSPCertStatus.GOOD,
                 this_update=NOW - timedelta(hours=1), next_update=NOW + timedelta(days=1),
                 revocation_time=None, revocation_reason=None,
                 cert_id_hash=None, embed=None):
    """DER OCSP response about cert (issued by issuer), signed by signer (a Party)"""
    if status == ocsp.OCSPCertStatus.REVOKED and revocation_time is None:
        revocation_time = REVOKED_AT

    builder = ocsp.OCSPResponseBuilder().add_response(
        cert=cert.cert,
        issuer=issuer.cert,
        algorithm=cert_id_hash or hashes.SHA1(),
        cert_status=status,
        this_update=this_update,
        next_update=next_update,
        revocation_time=revocation_time,
        revocation_reason=revocation_reason,
    ).responder_id(ocsp.OCSPResponderEncoding.HASH, signer.cert)
    if embed:
        builder = builder.certificates([p.cert for p in embed])
    resp = builder.sign(signer.key, _sign_algo(signer.key))
    return resp.public_bytes(serialization.Encoding.DER)


@pytest.fixture
def make_staple():
    return build_staple


@pytest.fixture
def log_lines():
    return []
