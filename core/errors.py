# =============================================================================
# core/errors.py  -  Error Taxonomy for Upstream and Caller Failures
# =============================================================================
#
# Every failure that leaves core/ is one of the classes below.  Each carries:
#   - kind:      a stable, machine-checkable string ("rate_limited", ...)
#   - retryable: whether the caller may simply try again later
#   - message:   human-readable text (upstream message included when known)
#
# The client maps HTTP statuses into this taxonomy; operations in
# core/search.py re-raise with context ("Search failed: ...") while keeping
# the kind; tools/mcp_server.py turns the error into a response dict.
# =============================================================================


class ActivityApiError(Exception):
    """Base class for every failure surfaced above the API client."""

    kind = "internal"
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def with_context(self, prefix: str) -> "ActivityApiError":
        """Return an error of the same kind with an operation prefix."""
        return type(self)(f"{prefix}: {self.message}")

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "kind": self.kind,
            "retryable": self.retryable,
        }


class InvalidParameters(ActivityApiError):
    """Bad or missing caller input, or a request upstream rejected as malformed."""

    kind = "invalid_parameters"


class Unauthorized(ActivityApiError):
    """The API key was rejected.  No search can succeed until it is fixed."""

    kind = "unauthorized"


class RateLimited(ActivityApiError):
    kind = "rate_limited"
    retryable = True


class UpstreamUnavailable(ActivityApiError):
    kind = "upstream_unavailable"
    retryable = True


class NotFound(ActivityApiError):
    kind = "not_found"


class InternalError(ActivityApiError):
    kind = "internal"


# Status codes treated as "upstream is down, try later"
_UNAVAILABLE_STATUSES = {502, 503, 504}


def error_for_status(
    status: int | None,
    message: str,
    detail_lookup: bool = False,
) -> ActivityApiError:
    """Map an upstream HTTP status (and its message) to the taxonomy.

    Args:
        status: HTTP status code from the upstream response.
        message: The upstream's message text, or a transport-level reason.
        detail_lookup: True for asset-by-id lookups, where 404 means the
            activity does not exist rather than a generic failure.

    Returns:
        An ActivityApiError subclass instance (never raised here).
    """
    if status == 400:
        return InvalidParameters(f"Bad request: {message}")

    if status == 403:
        if "Over Rate Limit" in message:
            return RateLimited("API rate limit exceeded. Please try again later.")
        if "Not Authorized" in message:
            return Unauthorized("Invalid API key or unauthorized access.")
        return Unauthorized(f"Access denied: {message}")

    if status == 404 and detail_lookup:
        return NotFound("Activity not found")

    if status == 414:
        return InvalidParameters(
            "Request URI too long. Please reduce the number of parameters."
        )

    if status in _UNAVAILABLE_STATUSES:
        return UpstreamUnavailable(
            "Active Network API is temporarily unavailable. Please try again later."
        )

    return InternalError(f"Active Network API error ({status}): {message}")
