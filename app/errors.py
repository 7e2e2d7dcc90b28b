# Error taxonomy for the guided diagnosis pipeline


class DiagnosisError(Exception):
    """Base class for every error raised by the diagnosis pipeline."""


class ValidationError(DiagnosisError):
    """Session input is missing or malformed. Raised before any provider call."""


class DiagnosisProviderError(DiagnosisError):
    """
    The AI diagnosis call failed, timed out, or returned nothing usable.
    Always fatal to the current request.
    """

    def __init__(self, message: str, status_code: int = 502, transient: bool = False):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.transient = transient


class VideoProviderError(DiagnosisError):
    """A video lookup failed. Absorbed by the resolver, never surfaced."""
