"""Error taxonomy for generation and key handling."""

from __future__ import annotations


class ApiKeyError(RuntimeError):
    """A key is missing, invalid or revoked.

    ``api_key`` is set when the failure is attributable to one concrete key,
    which the caller then evicts from the pool.
    """

    def __init__(self, message: str, *, provider: str | None = None, api_key: str | None = None) -> None:
        super().__init__(message)
        self.provider = provider
        self.api_key = api_key


class GenerationError(RuntimeError):
    """Any other provider, network or input failure."""

    def __init__(self, message: str, *, provider: str | None = None) -> None:
        super().__init__(message)
        self.provider = provider
