"""
End-to-end checks of StapleValidator: verdicts and the diagnostics it logs.
"""
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest
from cryptography.x509 import ocsp

from ocsp_staple import validator as validator_module
from ocsp_staple.config import StapleCheckConfig
from ocsp_staple.errors import IncompleteChain, Revoked
from ocsp_staple.models import CertStatus, ErrorKind, HandshakeState
from ocsp_staple.validator import StapleValidator

from conftest import NOW, REVOKED_AT


@pytest.fixture
def validator(log_lines):
    return StapleValidator(log_callback=log_lines.append, clock=lambda: NOW)


class _Stdout:
    def __init__(self):
        self.writes = []

    def write(self, text):
        self.writes.append(text)
        return len(text)

    def flush(self):
        pass


def test_default_sink_writes_block_and_newline_at_once(leaf, ca, make_staple, monkeypatch):
    stdout = _Stdout()
    monkeypatch.setattr("sys.stdout", stdout)
    StapleValidator(clock=lambda: NOW).validate(HandshakeState([[leaf.cert, ca.cert]], make_staple(leaf, ca, ca)))

    assert len(stdout.writes) == 1
    assert stdout.writes[0].endswith("[OK] Staple accepted\n")
    assert "--- OCSP Staple ---" in stdout.writes[0]


def test_scenario_a_good_staple_accepted(validator, log_lines, leaf, ca, make_staple):
    state = HandshakeState([[leaf.cert, ca.cert]], make_staple(leaf, ca, ca))
    verdict = validator.validate(state)

    assert verdict.accepted
    assert verdict.error is None
    assert verdict.signature_verified
    assert verdict.response.status is CertStatus.GOOD
    verdict.raise_for_reject()

    assert len(log_lines) == 1
    block = log_lines[0]
    assert "Status    : Good" in block
    assert "Verified: true" in block
    assert "OCSP Response     : sha256_rsa" in block
    assert "Leaf Certificate  : sha256_rsa" in block
    assert "Issuer Certificate: sha256_rsa" in block
    assert "[OK] Staple accepted" in block


def test_scenario_b_revoked(validator, log_lines, leaf, ca, make_staple):
    raw = make_staple(leaf, ca, ca, status=ocsp.OCSPCertStatus.REVOKED)
    verdict = validator.validate(HandshakeState([[leaf.cert, ca.cert]], raw))

    assert not verdict.accepted
    assert verdict.reason is ErrorKind.REVOKED
    assert verdict.error.revoked_at == REVOKED_AT
    assert verdict.signature_verified
    with pytest.raises(Revoked):
        verdict.raise_for_reject()

    block = log_lines[0]
    assert "Status    : Revoked" in block
    assert f"RevokedAt : {REVOKED_AT.isoformat()}" in block


def test_revoked_wins_over_bad_signature(validator, log_lines, leaf, ca, other_ca, make_staple):
    raw = make_staple(leaf, ca, other_ca, status=ocsp.OCSPCertStatus.REVOKED)
    verdict = validator.validate_chain([leaf.cert, ca.cert], raw)

    assert verdict.reason is ErrorKind.REVOKED
    assert not verdict.signature_verified
    assert verdict.signature_error
    assert "Verified: false" in log_lines[0]


def test_scenario_c_incomplete_chain_never_parses(validator, log_lines, leaf, monkeypatch):
    def fail(*args, **kwargs):
        raise AssertionError("staple must not be parsed")

    monkeypatch.setattr(validator_module, "parse_staple", fail)
    verdict = validator.validate(HandshakeState([[leaf.cert]], b"anything"))

    assert verdict.reason is ErrorKind.INCOMPLETE_CHAIN
    assert isinstance(verdict.error, IncompleteChain)
    assert (verdict.error.got, verdict.error.want) == (1, 2)
    assert verdict.response is None
    assert log_lines == ["[ERROR] incomplete cert chain, got 1, want at least 2"]


def test_missing_chain(validator, log_lines):
    verdict = validator.validate(HandshakeState([], b""))
    assert verdict.reason is ErrorKind.MISSING_CHAIN
    assert len(log_lines) == 1


def test_scenario_d_staple_for_other_certificate(validator, log_lines, leaf, other_leaf, ca, make_staple):
    verdict = validator.validate_chain([leaf.cert, ca.cert], make_staple(other_leaf, ca, ca))

    assert not verdict.accepted
    assert verdict.reason is ErrorKind.BINDING_MISMATCH
    assert verdict.error.is_parse_failure
    assert verdict.response is None
    assert "Status" not in log_lines[0]


def test_scenario_e_foreign_signature(validator, log_lines, leaf, ca, other_ca, make_staple):
    verdict = validator.validate_chain([leaf.cert, ca.cert], make_staple(leaf, ca, other_ca))

    assert not verdict.accepted
    assert verdict.reason is ErrorKind.BAD_SIGNATURE
    assert verdict.response.status is CertStatus.GOOD
    block = log_lines[0]
    assert "Status    : Good" in block
    assert "Verified: false" in block
    assert "bad OCSP signature" in block


def test_unknown_status_rejected(validator, leaf, ca, make_staple):
    raw = make_staple(leaf, ca, ca, status=ocsp.OCSPCertStatus.UNKNOWN)
    verdict = validator.validate_chain([leaf.cert, ca.cert], raw)
    assert verdict.reason is ErrorKind.UNKNOWN_STATUS
    assert verdict.signature_verified


@pytest.mark.parametrize("raw", [b"", None, b"\x00\x01garbage"])
def test_bad_staple_bytes_give_parse_failure_without_status_block(validator, log_lines, leaf, ca, raw):
    verdict = validator.validate_chain([leaf.cert, ca.cert], raw)
    assert verdict.reason is ErrorKind.PARSE_FAILURE
    assert verdict.response is None
    assert len(log_lines) == 1
    assert log_lines[0].startswith("[ERROR] failed to parse OCSP response")


def test_delegated_responder_through_validator(validator, log_lines, leaf, ca, responder, make_staple):
    raw = make_staple(leaf, ca, responder, embed=[responder])
    verdict = validator.validate_chain([leaf.cert, ca.cert], raw)
    assert verdict.accepted
    assert verdict.signer == "delegated"
    assert "Signer  : delegated" in log_lines[0]


def test_same_input_same_verdict(validator, leaf, ca, other_ca, make_staple):
    raw = make_staple(leaf, ca, other_ca)
    first = validator.validate_chain([leaf.cert, ca.cert], raw)
    second = validator.validate_chain([leaf.cert, ca.cert], raw)

    assert first.accepted == second.accepted
    assert first.reason == second.reason
    assert str(first.error) == str(second.error)
    assert first.signature_verified == second.signature_verified
    assert first.response == second.response


def test_expired_staple_accepted_by_default(log_lines, leaf, ca, make_staple):
    late = StapleValidator(log_callback=log_lines.append, clock=lambda: NOW + timedelta(days=30))
    assert late.validate_chain([leaf.cert, ca.cert], make_staple(leaf, ca, ca)).accepted


def test_expired_staple_rejected_with_freshness(log_lines, leaf, ca, make_staple):
    config = StapleCheckConfig(check_freshness=True)
    late = StapleValidator(config, log_callback=log_lines.append, clock=lambda: NOW + timedelta(days=30))
    verdict = late.validate_chain([leaf.cert, ca.cert], make_staple(leaf, ca, ca))
    assert verdict.reason is ErrorKind.STALE_RESPONSE
    assert "nextUpdate" in str(verdict.error)


def test_max_age_with_freshness(log_lines, leaf, ca, make_staple):
    config = StapleCheckConfig(check_freshness=True, max_age_hours=12)
    raw = make_staple(leaf, ca, ca, this_update=NOW - timedelta(hours=20), next_update=NOW + timedelta(days=2))

    verdict = StapleValidator(config, log_callback=log_lines.append, clock=lambda: NOW).validate_chain(
        [leaf.cert, ca.cert], raw)
    assert verdict.reason is ErrorKind.STALE_RESPONSE

    config.max_age_hours = 24
    verdict = StapleValidator(config, log_callback=log_lines.append, clock=lambda: NOW).validate_chain(
        [leaf.cert, ca.cert], raw)
    assert verdict.accepted


def test_future_this_update_rejected_with_freshness(log_lines, leaf, ca, make_staple):
    config = StapleCheckConfig(check_freshness=True)
    raw = make_staple(leaf, ca, ca, this_update=NOW + timedelta(hours=2), next_update=NOW + timedelta(days=2))
    verdict = StapleValidator(config, log_callback=log_lines.append, clock=lambda: NOW).validate_chain(
        [leaf.cert, ca.cert], raw)
    assert verdict.reason is ErrorKind.STALE_RESPONSE


def test_concurrent_handshakes_log_whole_blocks(leaf, ca, other_ca, make_staple):
    lines = []
    shared = StapleValidator(log_callback=lines.append)
    good = make_staple(leaf, ca, ca)
    bad = make_staple(leaf, ca, other_ca)

    with ThreadPoolExecutor(max_workers=8) as pool:
        verdicts = list(pool.map(
            lambda raw: shared.validate_chain([leaf.cert, ca.cert], raw), [good, bad] * 10))

    assert [v.accepted for v in verdicts] == [True, False] * 10
    assert len(lines) == 20
    assert all(block.startswith("--- OCSP Staple ---") for block in lines)
