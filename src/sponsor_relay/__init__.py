"""
Sponsor Relay package.

Relays pre-signed transactions through an on-chain sponsor contract, paying
their fees from a funded relayer account when the contract accepts them.
"""

from .config import RelayConfig
from .decoder import TransactionDecoder
from .models import DecodedTransaction, RelayOutcome, TxStatus
from .pipeline import SponsorRelay

__all__ = ["RelayConfig", "SponsorRelay", "TransactionDecoder", "DecodedTransaction", "RelayOutcome", "TxStatus"]
__version__ = "0.1.0"
