"""Error types shared by the HTTP client and the request cache."""

from typing import Any


class RemoteRequestError(Exception):
    """The backend answered, but with a non-success status.

    Carries the decoded response payload so callers (and the request cache)
    can tell it apart from transport failures, which never reach the
    backend and have nothing structured to report.
    """

    def __init__(
        self,
        status_code: int,
        payload: dict[str, Any] | None = None,
        url: str = "",
    ) -> None:
        self.status_code = status_code
        self.payload: dict[str, Any] = payload or {}
        self.url = url
        super().__init__(f"{status_code} {self.message}" + (f" ({url})" if url else ""))

    @property
    def message(self) -> str:
        error = self.payload.get("error")
        return str(error) if error else "Request failed"

    def copy(self) -> "RemoteRequestError":
        """Return an equal error with no traceback attached."""
        return RemoteRequestError(self.status_code, dict(self.payload), self.url)

    def cache_payload(self) -> dict[str, str]:
        """Return the value recorded in the cache for this error."""
        return {"error": self.message}


def is_structured_remote_error(exc: BaseException) -> bool:
    """Return True if *exc* carries a backend response payload."""
    return isinstance(exc, RemoteRequestError)
