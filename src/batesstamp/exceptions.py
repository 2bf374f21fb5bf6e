# batesstamp/exceptions.py
class BatesStampError(Exception):
    """Base exception for the batesstamp library."""
    pass

class InvalidSequenceValue(BatesStampError, ValueError):
    """Raised when a Bates number would fall below 1."""
    pass

class ChannelTransportError(BatesStampError):
    """Raised when the socket pair cannot be created, written or read."""
    pass

class ProcessSpawnError(BatesStampError):
    """Raised when the isolated worker process cannot be forked."""
    pass

class ChildCrashed(BatesStampError):
    """Raised when a worker process exits without sending a response."""
    pass

class AnnotationError(BatesStampError):
    """Raised when stamping a single file fails."""

    def __init__(self, message: str, kind: str = "AnnotationError"):
        super().__init__(message)
        self.kind = kind
