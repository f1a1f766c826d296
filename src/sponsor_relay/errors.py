#!/usr/bin/env python3
"""Error taxonomy for the sponsor relay.

Pipeline stages resolve these into a terminal status; side-channel errors
(persistence, notification) are logged and never reach the caller.
"""


class RelayError(Exception):
    """Base class for all relay errors."""


class SchemaError(RelayError):
    """Raised when a raw transaction cannot be decoded or has malformed fields.

    Attributes:
        fields: Names of every field that failed validation
        sender: Recovered sender address, if decoding got that far
    """

    def __init__(self, fields: list[str], sender: str | None = None) -> None:
        self.fields = list(fields)
        self.sender = sender
        super().__init__("; ".join(f"{name} is invalid." for name in self.fields))


class IneligibleError(RelayError):
    """The sponsor contract declined the transaction during simulation."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class SimulationInfrastructureError(RelayError):
    """The dry run failed for reasons unrelated to eligibility (node, network)."""

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(detail)


class SubmissionError(RelayError):
    """Sending or confirming the sponsored transaction failed.

    Attributes:
        possibly_applied: True when the node accepted the transaction before
            the failure, so it may still be mined
        tx_hash: Hash of the relayer transaction, when one was obtained
    """

    def __init__(
        self,
        detail: str,
        possibly_applied: bool = False,
        tx_hash: str | None = None
    ) -> None:
        self.detail = detail
        self.possibly_applied = possibly_applied
        self.tx_hash = tx_hash
        if possibly_applied and tx_hash:
            detail = (
                f"{detail} (transaction {tx_hash} was accepted by the node and "
                "may already be applied; do not blindly resubmit)"
            )
        elif possibly_applied:
            detail = (
                f"{detail} (the signed transaction may have reached the node "
                "and may already be applied; do not blindly resubmit)"
            )
        super().__init__(detail)


class PersistenceError(RelayError):
    """Appending or querying the transaction log failed."""


class NotificationError(RelayError):
    """Delivering a low-balance alert failed."""
