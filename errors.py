from __future__ import annotations


class RestoreError(RuntimeError):
    pass


class InvalidInput(RestoreError):
    """Malformed URL, date or archived URL. Raised before any network activity."""


class NoCaptureFound(RestoreError):
    """No archive capture satisfies the requested resolution mode."""


class FetchFailure(RestoreError):
    """A pinned resource could not be retrieved after every mode and retry."""

    def __init__(self, url: str, reason: str = "") -> None:
        self.url = url
        self.reason = reason
        message = f"Could not fetch {url}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
