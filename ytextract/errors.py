from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ytextract.services.error_classifier import ClassifiedError


class YouTubeExtractError(Exception):
    pass


class TransportError(YouTubeExtractError):
    def __init__(
        self,
        message: str,
        *,
        attempts: int,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.attempts = attempts
        self.status_code = status_code


class ProtocolError(YouTubeExtractError):
    """Upstream format drifted away from what this library understands."""


class SchemaError(ProtocolError):
    pass


class CipherError(ProtocolError):
    pass


class CipherEntryNotFoundError(CipherError):
    def __init__(self) -> None:
        super().__init__("Signature cipher entry routine was not found in the player asset.")


class CipherStatementError(CipherError):
    def __init__(self, statement: str) -> None:
        super().__init__(f"Unable to parse signature cipher statement: '{statement}'")
        self.statement = statement


class CipherSubroutineNotFoundError(CipherError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Signature cipher sub-routine '{name}' was not found.")
        self.name = name


class UnrecognizedCipherOperationError(CipherError):
    def __init__(self, name: str, body: str) -> None:
        super().__init__(f"Unrecognized signature cipher operation [{name}]: '{body}'")
        self.name = name
        self.body = body


class ContinuationProtocolError(ProtocolError):
    pass


class StreamDescriptorError(ProtocolError):
    pass


class ClassifiedDomainError(YouTubeExtractError):
    def __init__(self, classified: ClassifiedError) -> None:
        super().__init__(classified.describe())
        self.classified = classified

    @property
    def category(self) -> str:
        return self.classified.category.value
