"""Processing error taxonomy.

``TerminalProcessingError`` and its subclasses describe conditions that a
retry cannot fix; the worker fails their queue entry without scheduling
another attempt.  Anything else raised by the pipeline is retried.
"""

NO_KML_FOUND = "no_kml_found"
FILE_MISSING = "file_missing"


class KmzProcessingError(Exception):
    """Base class for pipeline errors."""


class TerminalProcessingError(KmzProcessingError):
    """A non-retryable failure carrying a stable, machine-readable reason.

    Args:
        reason: Reason code persisted in the job's metadata.
        message: Optional human-readable description (defaults to the reason).
    """

    def __init__(self, reason: str, message: str | None = None) -> None:
        self.reason = reason
        super().__init__(message or reason)


class NoKmlDocumentError(TerminalProcessingError):
    """The archive holds no ``.kml`` document."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(NO_KML_FOUND, message)


class FileMissingError(TerminalProcessingError):
    """The stored upload no longer exists at its expected location."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(FILE_MISSING, message)


class ArchiveError(TerminalProcessingError):
    """The stored upload is not a readable zip archive."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class KmlParseError(TerminalProcessingError):
    """The KML document is not well-formed XML."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
