class LLMUpstreamError(RuntimeError):
    """Raised when the LLM provider keeps failing transiently (timeouts, rate limits, connection resets, 5xx)."""
    pass


class LLMRequestError(RuntimeError):
    """Raised when the LLM provider rejects the request (bad request, auth). Never retried."""
    pass


class SessionNotFoundError(LookupError):
    """Raised when a session id is unknown or has expired."""
    pass


class ImagePreprocessingError(ValueError):
    """Raised when an uploaded image cannot be decoded or normalized."""
    pass


class SnapshotExportError(RuntimeError):
    """Raised when a session snapshot cannot be delivered to the CRM exporter."""
    pass
