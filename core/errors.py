"""
Error types shared across the probe and pipeline layers.
"""


class TransportError(Exception):
    """A request failed before a usable response arrived (DNS, connect, TLS, timeout)."""


class IngestionError(ValueError):
    """An input record could not be turned into a hostname. Fatal for the whole run."""

    def __init__(self, row: int, reason: str):
        super().__init__(f"row {row}: {reason}")
        self.row = row
        self.reason = reason
