import base64
import binascii
import os
import re
from typing import List

from cryptography import x509


_PEM_BLOCK = re.compile(rb"-----BEGIN ([A-Z0-9 ]+)-----(.*?)-----END \1-----", re.S)


def _read(path: str, allow_empty: bool = False) -> bytes:
    if not path or not path.strip():
        raise ValueError("File path is empty")

    if not os.path.exists(path):
        raise FileNotFoundError(f"File not found: {path}")

    with open(path, "rb") as f:
        data = f.read()

    if not data and not allow_empty:
        raise ValueError(f"File is empty: {path}")
    return data


def load_certificate(path: str) -> x509.Certificate:
    """Load a single certificate, PEM or DER"""
    data = _read(path)
    try:
        if b"-----BEGIN" in data:
            return x509.load_pem_x509_certificate(data)
        return x509.load_der_x509_certificate(data)
    except ValueError as e:
        raise ValueError(f"Failed to load certificate from {path}: {e}")


def load_certificates(path: str) -> List[x509.Certificate]:
    """Load every certificate of a PEM bundle (or the one DER certificate)"""
    data = _read(path)
    try:
        if b"-----BEGIN" in data:
            return x509.load_pem_x509_certificates(data)
        return [x509.load_der_x509_certificate(data)]
    except ValueError as e:
        raise ValueError(f"Failed to load certificates from {path}: {e}")


def load_staple(path: str) -> bytes:
    """
    Read a stapled OCSP response.

    Accepts raw DER, a PEM-armoured block or plain base64 text (as printed by
    ``openssl s_client -status`` helpers). An empty file gives b"", which the
    validator rejects as an unparseable staple.
    """
    data = _read(path, allow_empty=True)
    if not data.strip():
        return b""

    match = _PEM_BLOCK.search(data)
    if match:
        data = match.group(2)
    elif data[:1] == b"\x30":
        return data

    try:
        return base64.b64decode(b"".join(data.split()), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Failed to decode OCSP staple from {path}: {e}")
