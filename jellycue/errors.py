from typing import Optional


class JellyfinApiError(RuntimeError):
    """Raised when the server answers with an error or an unusable body."""

    def __init__(self, message: str, status: Optional[int] = None, url: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.url = url


class PlayerError(RuntimeError):
    """Raised when a player command cannot be delivered or is rejected."""
