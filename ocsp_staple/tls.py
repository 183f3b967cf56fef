"""
TLS handshake adapter

Connects to a server with the status_request extension, collects the stapled
OCSP response and OpenSSL's verified chain, and hands both to a
StapleValidator. The connection is shut down whatever the verdict; chain
building and trust decisions are left to OpenSSL, the name check to
service_identity.

NATS servers send a plaintext INFO line before the TLS upgrade; pass
nats=True to read it first. Nothing is sent after the handshake, so no
CONNECT is ever issued.
"""

import ipaddress
import json
import select
import socket
from typing import Callable, List, Optional, Tuple

from OpenSSL import SSL
from service_identity import CertificateError, VerificationError
from service_identity.pyopenssl import verify_hostname, verify_ip_address

from .errors import HandshakeError
from .models import HandshakeState, Verdict

NATS_INFO_LIMIT = 64 * 1024


def _verify_cb(conn, cert, errno, depth, ok) -> bool:
    return bool(ok)


def _build_context(ca_file: str = "", client_cert: str = "", client_key: str = "",
                   staples: Optional[List[bytes]] = None) -> SSL.Context:
    ctx = SSL.Context(SSL.TLS_CLIENT_METHOD)
    ctx.set_verify(SSL.VERIFY_PEER, _verify_cb)
    if ca_file:
        ctx.load_verify_locations(ca_file)
    else:
        ctx.set_default_verify_paths()

    if client_cert and client_key:
        ctx.use_certificate_chain_file(client_cert)
        ctx.use_privatekey_file(client_key)
        ctx.check_privatekey()

    def _ocsp_cb(conn, ocsp_data, data) -> bool:
        # Keep the staple for the validator; the verdict is given after the handshake
        staples.append(bytes(ocsp_data or b""))
        return True

    if staples is not None:
        ctx.set_ocsp_client_callback(_ocsp_cb)
    return ctx


def _handshake(conn: SSL.Connection, sock: socket.socket, timeout: float) -> None:
    while True:
        try:
            conn.do_handshake()
            return
        except SSL.WantReadError:
            readable, _, _ = select.select([sock], [], [], timeout)
            if not readable:
                raise HandshakeError("TLS handshake timed out")
        except SSL.WantWriteError:
            _, writable, _ = select.select([], [sock], [], timeout)
            if not writable:
                raise HandshakeError("TLS handshake timed out")


def _read_nats_info(sock: socket.socket, log: Callable[[str], None]) -> dict:
    """Consume the plaintext 'INFO {...}' line a NATS server sends before TLS"""
    buf = b""
    try:
        while b"\r\n" not in buf:
            chunk = sock.recv(4096)
            if not chunk:
                raise HandshakeError("connection closed before the NATS INFO line")
            buf += chunk
            if len(buf) > NATS_INFO_LIMIT:
                raise HandshakeError("NATS INFO line too long")
    except socket.timeout:
        raise HandshakeError("timed out waiting for the NATS INFO line")
    except OSError as exc:
        raise HandshakeError(f"cannot read the NATS INFO line: {exc}")

    line = buf.split(b"\r\n", 1)[0]
    op, _, payload = line.partition(b" ")
    if op.upper() != b"INFO":
        raise HandshakeError(f"not a NATS server, got {line[:40]!r}")
    try:
        info = json.loads(payload)
    except ValueError as exc:
        raise HandshakeError(f"invalid NATS INFO payload: {exc}")
    if not isinstance(info, dict):
        raise HandshakeError("invalid NATS INFO payload: not an object")

    log(f"[DEBUG] NATS server {info.get('server_id', '?')} version {info.get('version', '?')}, "
        f"tls_required={info.get('tls_required', False)}")
    return info


def _is_ip(name: str) -> bool:
    try:
        ipaddress.ip_address(name)
    except ValueError:
        return False
    return True


def _verify_peer_name(conn: SSL.Connection, name: str) -> None:
    try:
        if _is_ip(name):
            verify_ip_address(conn, name)
        else:
            verify_hostname(conn, name)
    except (VerificationError, CertificateError) as exc:
        raise HandshakeError(f"server certificate does not match {name}: {exc}")


def fetch_handshake(host: str,
                    port: int = 443,
                    ca_file: str = "",
                    client_cert: str = "",
                    client_key: str = "",
                    server_name: Optional[str] = None,
                    timeout: float = 10,
                    nats: bool = False,
                    log_callback: Optional[Callable[[str], None]] = None) -> HandshakeState:
    """
    Run a TLS handshake against host:port and return its verified chain and staple.

    The peer certificate must be trusted by ca_file (or the system store) and
    match server_name, or host when no server_name is given. HandshakeError
    is raised otherwise, and for every connection or protocol failure.
    """
    log = log_callback or (lambda text: None)
    staples: List[bytes] = []
    name = server_name or host

    try:
        ctx = _build_context(ca_file, client_cert, client_key, staples)
    except SSL.Error as exc:
        raise HandshakeError(f"invalid TLS configuration: {exc}")

    log(f"[DEBUG] Connecting to {host}:{port}")
    try:
        sock = socket.create_connection((host, port), timeout=timeout)
    except OSError as exc:
        raise HandshakeError(f"cannot connect to {host}:{port}: {exc}")

    if nats:
        try:
            _read_nats_info(sock, log)
        except HandshakeError:
            sock.close()
            raise

    conn = SSL.Connection(ctx, sock)
    try:
        if not _is_ip(name):
            conn.set_tlsext_host_name(name.encode("idna"))
        conn.request_ocsp()
        conn.set_connect_state()
        try:
            _handshake(conn, sock, timeout)
        except SSL.Error as exc:
            raise HandshakeError(f"TLS handshake with {host}:{port} failed: {exc}")

        log(f"[DEBUG] Negotiated {conn.get_protocol_version_name()} {conn.get_cipher_name()}")
        _verify_peer_name(conn, name)
        chain = conn.get_verified_chain() or []
        state = HandshakeState(
            verified_chains=[[cert.to_cryptography() for cert in chain]] if chain else [],
            ocsp_response=staples[0] if staples else None,
        )
    finally:
        try:
            conn.shutdown()
        except SSL.Error:
            # peer may already have gone away
            pass
        conn.close()
        sock.close()

    log(f"[DEBUG] Verified chain length {len(state.verified_chains[0]) if state.verified_chains else 0}, "
        f"staple {len(state.ocsp_response or b'')} bytes")
    return state


def check_server(host: str, port: int, validator, **kwargs) -> Tuple[HandshakeState, Verdict]:
    """Handshake with host:port and validate the staple it presented"""
    state = fetch_handshake(host, port, log_callback=validator.log if validator.config.show_debug else None, **kwargs)
    return state, validator.validate(state)
