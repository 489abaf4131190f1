"""Exception hierarchy shared by the ingest, retrieval and chat layers."""


class DocChatError(Exception):
    """Base class for all docchat errors."""


class ExtractionError(DocChatError):
    """An uploaded file could not be turned into plain text.

    Aborts the whole upload: nothing is persisted.
    """


class UnsupportedTypeError(ExtractionError):
    """The declared file type is not one of the accepted types."""

    def __init__(self, declared_type: str):
        self.declared_type = declared_type
        super().__init__(
            f"Unsupported file type '{declared_type or '(none)'}'. "
            "Only PDF, DOCX, TXT, and MD files are allowed."
        )


class UploadTooLargeError(ExtractionError):
    """The uploaded file exceeds the configured size limit."""

    def __init__(self, size: int, limit: int):
        self.size = size
        self.limit = limit
        super().__init__(f"File is {size} bytes; the limit is {limit} bytes")


class EmbeddingError(DocChatError):
    """The embedding provider failed or returned an unusable vector."""


class GenerationError(DocChatError):
    """The text generator failed to produce a reply."""
