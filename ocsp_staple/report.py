import csv
import json
from datetime import datetime
from typing import List, Optional

from cryptography import x509

from .models import StapleDiagnostic, Verdict
from .response import signature_algorithm_name


def build_diagnostic(verdict: Verdict,
                     leaf: Optional[x509.Certificate] = None,
                     issuer: Optional[x509.Certificate] = None) -> StapleDiagnostic:
    record = StapleDiagnostic(accepted=verdict.accepted)
    if verdict.error is not None:
        record.error_kind = verdict.reason.value if verdict.reason else type(verdict.error).__name__
        record.error = str(verdict.error)

    resp = verdict.response
    if resp is None:
        return record

    record.status = resp.status.value
    record.revoked_at = resp.revoked_at
    record.revocation_reason = resp.revocation_reason
    record.produced_at = resp.produced_at
    record.this_update = resp.this_update
    record.next_update = resp.next_update
    record.signature_verified = verdict.signature_verified
    record.signer = verdict.signer
    record.response_signature_algorithm = resp.signature_algorithm
    if leaf is not None:
        record.leaf_signature_algorithm = signature_algorithm_name(leaf.signature_algorithm_oid)
    if issuer is not None:
        record.issuer_signature_algorithm = signature_algorithm_name(issuer.signature_algorithm_oid)
    record.details = {
        "serial_number": f"{resp.serial_number:x}",
        "cert_id_hash": resp.hash_algorithm,
        "responder_id": resp.responder_id,
    }
    if verdict.signature_error:
        record.details["signature_error"] = verdict.signature_error
    return record


def _ts(value: Optional[datetime]) -> str:
    return value.isoformat() if value is not None else "-"


def format_diagnostic(record: StapleDiagnostic) -> str:
    """Render one record as a single text block"""
    if not record.has_status_block:
        return f"[ERROR] {record.error}"

    lines = [
        "--- OCSP Staple ---",
        f"Status    : {record.status}",
    ]
    if record.revoked_at is not None:
        lines.append(f"RevokedAt : {_ts(record.revoked_at)}")
        if record.revocation_reason:
            lines.append(f"Reason    : {record.revocation_reason}")
    lines += [
        f"ProducedAt: {_ts(record.produced_at)}",
        f"ThisUpdate: {_ts(record.this_update)}",
        f"NextUpdate: {_ts(record.next_update)}",
        "",
        "--- OCSP Signature ---",
        f"Verified: {'true' if record.signature_verified else 'false'}",
    ]
    if record.signer:
        lines.append(f"Signer  : {record.signer}")
    lines += [
        "",
        "--- Signature Algorithms ---",
        f"OCSP Response     : {record.response_signature_algorithm}",
        f"Leaf Certificate  : {record.leaf_signature_algorithm}",
        f"Issuer Certificate: {record.issuer_signature_algorithm}",
    ]
    if record.accepted:
        lines.append("[OK] Staple accepted")
    else:
        lines.append(f"[ERROR] {record.error}")
    return "\n".join(lines)


def _row(target: str, r: StapleDiagnostic) -> dict:
    return {
        "target": target,
        "accepted": r.accepted,
        "error_kind": r.error_kind,
        "error": r.error,
        "status": r.status,
        "revoked_at": r.revoked_at.isoformat() if r.revoked_at else None,
        "revocation_reason": r.revocation_reason,
        "produced_at": r.produced_at.isoformat() if r.produced_at else None,
        "this_update": r.this_update.isoformat() if r.this_update else None,
        "next_update": r.next_update.isoformat() if r.next_update else None,
        "signature_verified": r.signature_verified,
        "signer": r.signer,
        "response_signature_algorithm": r.response_signature_algorithm,
        "leaf_signature_algorithm": r.leaf_signature_algorithm,
        "issuer_signature_algorithm": r.issuer_signature_algorithm,
        "details": r.details,
    }


def export_verdicts_json(records: List[tuple], path: str) -> None:
    """records is a list of (target, StapleDiagnostic) pairs"""
    payload = [_row(target, r) for target, r in records]
    with open(path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2)


def export_verdicts_csv(records: List[tuple], path: str) -> None:
    cols = [
        "target", "accepted", "error_kind", "error", "status", "revoked_at", "revocation_reason",
        "produced_at", "this_update", "next_update", "signature_verified", "signer",
        "response_signature_algorithm", "leaf_signature_algorithm", "issuer_signature_algorithm", "details",
    ]
    with open(path, "w", newline="", encoding="utf-8") as f:
        w = csv.DictWriter(f, fieldnames=cols)
        w.writeheader()
        for target, r in records:
            row = _row(target, r)
            row["details"] = json.dumps(row["details"])
            w.writerow(row)
