#!/usr/bin/env python3
"""
OCSP staple check

Connects to a TLS server (or reads leaf/issuer/staple files) and reports
whether the stapled OCSP response proves the server certificate is good.

Usage:
    ocsp-staple-check example.com
    ocsp-staple-check example.com:8443 --cafile ca.pem --tlscert me.pem --tlskey me.key
    ocsp-staple-check --nats nats.example.com --cafile ca.pem
    ocsp-staple-check --leaf leaf.pem --issuer ca.pem --staple staple.der
"""

import argparse
import sys
from typing import List, Optional, Tuple

from .chain import chain_from_handshake
from .config import ConfigManager, StapleCheckConfig
from .errors import HandshakeError
from .loaders import load_certificate, load_staple
from .report import build_diagnostic, export_verdicts_csv, export_verdicts_json
from .tls import check_server
from .validator import StapleValidator, write_stdout

EXIT_ACCEPTED = 0
EXIT_REJECTED = 1
EXIT_ERROR = 2

NATS_PORT = 4222


def parse_target(target: str, default_port: int) -> Tuple[str, int]:
    """Split HOST[:PORT]; bracketed IPv6 literals are supported"""
    if target.startswith("["):
        host, _, rest = target[1:].partition("]")
        port = rest[1:] if rest.startswith(":") else ""
    elif target.count(":") == 1:
        host, port = target.split(":")
    else:
        host, port = target, ""

    if not host:
        raise ValueError(f"Missing host in {target!r}")
    if not port:
        return host, default_port
    if not port.isdigit() or not 0 < int(port) < 65536:
        raise ValueError(f"Invalid port in {target!r}")
    return host, int(port)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ocsp-staple-check",
        description="Check the OCSP response stapled to a TLS handshake",
    )
    parser.add_argument("target", nargs="?", help="server to connect to, HOST[:PORT]")
    parser.add_argument("--config", help="JSON configuration file")

    tls = parser.add_argument_group("TLS connection")
    tls.add_argument("--cafile", dest="ca_file", help="CA certificate(s) to verify the peer against")
    tls.add_argument("--tlscert", dest="client_cert", help="TLS client certificate file")
    tls.add_argument("--tlskey", dest="client_key", help="private key file for the client certificate")
    tls.add_argument("--servername", help="SNI name if different from HOST")
    tls.add_argument("--timeout", dest="timeout_seconds", type=int, help="connect/handshake timeout in seconds")
    tls.add_argument("--nats", action="store_true",
                     help=f"target is a NATS server: read its INFO line before TLS (default port {NATS_PORT})")

    offline = parser.add_argument_group("offline check")
    offline.add_argument("--leaf", help="leaf certificate file")
    offline.add_argument("--issuer", help="issuer certificate file")
    offline.add_argument("--staple", help="OCSP response file (DER, PEM or base64)")

    checks = parser.add_argument_group("validation")
    checks.add_argument("--check-freshness", dest="check_freshness", action="store_true", default=None,
                        help="reject staples whose thisUpdate/nextUpdate do not cover the current time")
    checks.add_argument("--max-age-hours", dest="max_age_hours", type=int,
                        help="with --check-freshness, reject staples older than this")
    checks.add_argument("--no-delegated", dest="allow_delegated_responder", action="store_false", default=None,
                        help="only accept responses signed by the issuer key itself")

    out = parser.add_argument_group("output")
    out.add_argument("--json", dest="json_path", help="write the result as JSON")
    out.add_argument("--csv", dest="csv_path", help="write the result as CSV")
    out.add_argument("--debug", dest="show_debug", action="store_true", default=None, help="show connection details")
    out.add_argument("-q", "--quiet", action="store_true", help="print nothing, only set the exit code")
    return parser


def _load_config(args) -> StapleCheckConfig:
    manager = ConfigManager(args.config)
    manager.load_config()
    manager.update_from_dict({
        "ca_file": args.ca_file,
        "client_cert": args.client_cert,
        "client_key": args.client_key,
        "timeout_seconds": args.timeout_seconds,
        "check_freshness": args.check_freshness,
        "max_age_hours": args.max_age_hours,
        "allow_delegated_responder": args.allow_delegated_responder,
        "show_debug": args.show_debug,
    })
    return manager.config


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    offline = any((args.leaf, args.issuer, args.staple))
    if offline and args.target:
        parser.error("give either a target or --leaf/--issuer/--staple, not both")
    if offline and not all((args.leaf, args.issuer, args.staple)):
        parser.error("--leaf, --issuer and --staple are required together")
    if not offline and not args.target:
        parser.error("a target or --leaf/--issuer/--staple is required")
    if bool(args.client_cert) != bool(args.client_key):
        parser.error("--tlscert and --tlskey must be given together")

    def log(text: str) -> None:
        if not args.quiet:
            write_stdout(text)

    try:
        config = _load_config(args)
    except (OSError, ValueError) as e:
        log(f"[ERROR] Cannot load configuration: {e}")
        return EXIT_ERROR

    validator = StapleValidator(config, log_callback=log)

    try:
        if offline:
            target = args.leaf
            leaf = load_certificate(args.leaf)
            issuer = load_certificate(args.issuer)
            chain = [leaf, issuer]
            verdict = validator.validate_chain(chain, load_staple(args.staple))
        else:
            host, port = parse_target(args.target, NATS_PORT if args.nats else config.default_port)
            target = f"{host}:{port}"
            log(f"[INFO] Checking OCSP staple of {target}")
            state, verdict = check_server(
                host, port, validator,
                ca_file=config.ca_file,
                client_cert=config.client_cert,
                client_key=config.client_key,
                server_name=args.servername,
                timeout=config.timeout_seconds,
                nats=args.nats,
            )
            chain = chain_from_handshake(state)
    except (HandshakeError, OSError, ValueError) as e:
        log(f"[ERROR] {e}")
        return EXIT_ERROR

    if args.json_path or args.csv_path:
        padded = list(chain or []) + [None, None]
        record = build_diagnostic(verdict, padded[0], padded[1])
        if args.json_path:
            export_verdicts_json([(target, record)], args.json_path)
        if args.csv_path:
            export_verdicts_csv([(target, record)], args.csv_path)

    return EXIT_ACCEPTED if verdict.accepted else EXIT_REJECTED


if __name__ == "__main__":
    sys.exit(main())
