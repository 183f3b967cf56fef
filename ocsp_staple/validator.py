"""
OCSP Staple Validator

Runs the staple checks for one TLS handshake:

1. take leaf and issuer from the verified chain
2. parse the stapled response and bind it to that leaf/issuer pair
3. verify the response signature and interpret the certificate status

Every problem ends as a rejecting Verdict; nothing is retried. The validator
keeps no state between calls, so one instance can serve concurrent handshakes.
"""

import sys
from datetime import datetime
from typing import Callable, Optional, Sequence

from cryptography import x509

from .chain import chain_from_handshake, extract_leaf_and_issuer
from .config import StapleCheckConfig
from .errors import StapleError
from .evaluator import evaluate, utcnow
from .models import HandshakeState, Verdict
from .report import build_diagnostic, format_diagnostic
from .response import parse_staple


def write_stdout(text: str) -> None:
    """Emit one diagnostic block with its newline in a single write"""
    sys.stdout.write(text + "\n")


class StapleValidator:
    """Validates OCSP staples; diagnostics go to log_callback, one call per handshake"""

    def __init__(self,
                 config: Optional[StapleCheckConfig] = None,
                 log_callback: Optional[Callable[[str], None]] = None,
                 clock: Callable[[], datetime] = utcnow):
        self.config = config or StapleCheckConfig()
        self.log_callback = log_callback or write_stdout
        self.clock = clock

    def log(self, text: str) -> None:
        """Log message using callback"""
        self.log_callback(text)

    def validate(self, state: HandshakeState) -> Verdict:
        return self.validate_chain(chain_from_handshake(state), state.ocsp_response)

    def validate_chain(self, chain: Optional[Sequence[x509.Certificate]], staple: Optional[bytes]) -> Verdict:
        leaf = issuer = None
        try:
            leaf, issuer = extract_leaf_and_issuer(chain)
            response = parse_staple(staple, leaf, issuer)
        except StapleError as exc:
            verdict = Verdict(accepted=False, error=exc)
        else:
            verdict = evaluate(
                response,
                issuer,
                allow_delegated=self.config.allow_delegated_responder,
                freshness=self.config.check_freshness,
                max_age_hours=self.config.max_age_hours,
                clock_skew_seconds=self.config.clock_skew_seconds,
                clock=self.clock,
            )

        self.log(format_diagnostic(build_diagnostic(verdict, leaf, issuer)))
        return verdict

    def __call__(self, state: HandshakeState) -> Verdict:
        return self.validate(state)
