from __future__ import annotations


class IndexerError(Exception):
    """Base class for indexer failures."""


class ConfigurationError(IndexerError):
    """Invalid or unknown configuration; fatal at startup."""


class RpcError(IndexerError):
    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


class DecodeError(IndexerError):
    """A raw log does not match the ABI it was queried with."""
