"""
Exceptions Module
Error types shared by the GitHub client, the store and the sync manager.
"""


class GitHubAPIError(Exception):
    """Raised when the GitHub API answers with a non-success status or cannot be reached."""

    def __init__(self, message: str, status_code: int = None, response=None):
        self.message = message
        self.status_code = status_code
        self.response = response
        super().__init__(self.message)


class RecordValidationError(GitHubAPIError):
    """Raised when a GitHub payload is missing a field the store requires."""

    def __init__(self, message: str, payload: dict = None):
        super().__init__(message, response=payload)
        self.payload = payload


class StoreError(Exception):
    """Raised when a transaction or query against the local store fails."""

    def __init__(self, message: str, original: Exception = None):
        self.message = message
        self.original = original
        super().__init__(self.message)


class RetryCancelled(Exception):
    """Raised when a retry loop is cancelled before the operation succeeded."""
