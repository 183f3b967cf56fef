from typing import List, Optional, Sequence, Tuple

from cryptography import x509

from .errors import MissingChain, IncompleteChain
from .models import HandshakeState


REQUIRED_CHAIN_LENGTH = 2


def chain_from_handshake(state: HandshakeState) -> Optional[List[x509.Certificate]]:
    """First verified chain of the handshake, or None if the TLS stack built none"""
    if not state.verified_chains:
        return None
    return state.verified_chains[0]


def extract_leaf_and_issuer(chain: Optional[Sequence[x509.Certificate]]) -> Tuple[x509.Certificate, x509.Certificate]:
    if not chain:
        raise MissingChain()

    got = len(chain)
    if got < REQUIRED_CHAIN_LENGTH:
        raise IncompleteChain(got, REQUIRED_CHAIN_LENGTH)

    return chain[0], chain[1]
