"""
Error taxonomy for the dashboard services.

Component-local errors (validation, single request failures) are raised to the
caller at the service boundary. None of them pass through the reducer.
"""

from __future__ import annotations

import httpx


class DashboardError(Exception):
    """Base class for every error the services surface."""

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class NetworkError(DashboardError):
    """Request timed out or the connection was refused. Existing data is retained."""

    def __init__(self, message: str, *, timeout: bool = False):
        super().__init__(message)
        self.timeout = timeout


class AuthorizationError(DashboardError):
    """401/403. Fatal to the current view; the user must re-authenticate."""


class NotFoundError(DashboardError):
    """404 for the requested record or collection."""


class ValidationError(DashboardError):
    """The action was refused (locally or by the server). State is untouched."""


class ServerError(DashboardError):
    """5xx from the backend."""


class ChannelError(DashboardError):
    """Real-time channel disconnect or connect error."""


class SubmissionInFlight(DashboardError):
    """A mutation is already running on this coordinator."""


class SubmissionThrottled(DashboardError):
    """A repeat submission arrived inside the quiet period."""


def _detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    if isinstance(body, dict):
        return str(body.get("message") or body.get("detail") or body.get("error") or body)
    return str(body)[:200]


def raise_for_response(response: httpx.Response) -> None:
    """Map a non-2xx response onto the taxonomy."""
    if response.is_success:
        return
    status = response.status_code
    detail = _detail(response)
    if status in (401, 403):
        raise AuthorizationError(detail, status_code=status)
    if status == 404:
        raise NotFoundError(detail, status_code=status)
    if status in (400, 409, 422):
        raise ValidationError(detail, status_code=status)
    if status >= 500:
        raise ServerError(detail, status_code=status)
    raise DashboardError(detail, status_code=status)


def from_transport_error(exc: httpx.TransportError) -> NetworkError:
    """Map an httpx transport failure (timeout, refused, reset) to NetworkError."""
    if isinstance(exc, httpx.TimeoutException):
        return NetworkError(f"request timed out: {exc}", timeout=True)
    return NetworkError(f"network error: {exc}")
