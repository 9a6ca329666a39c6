"""Provider error taxonomy — transient vs permanent failures and fast-fail rejections."""


class ProviderError(Exception):
    """Base class for every failure raised on the way to a flight-pricing provider."""

    transient = False


class TransientProviderError(ProviderError):
    """Retryable failure: timeouts, network resets, 5xx, 429."""

    transient = True


class TransientNetworkError(TransientProviderError):
    """The provider could not be reached or the connection dropped."""


class ProviderTimeoutError(TransientProviderError):
    """A single attempt exceeded its time budget."""

    def __init__(self, timeout: float):
        super().__init__(f"Provider call timed out after {timeout:g}s")
        self.timeout = timeout


class PermanentProviderError(ProviderError):
    """Non-retryable failure: bad request, bad credentials, malformed payload."""


class AuthenticationError(PermanentProviderError):
    """Credential exchange with the provider failed."""


class ProviderParseError(PermanentProviderError):
    """The provider answered with a body we could not interpret."""


# Status codes worth another attempt
TRANSIENT_STATUS_CODES = frozenset({408, 429})


class ProviderHttpError(ProviderError):
    """Provider answered with a non-success HTTP status."""

    def __init__(self, status_code: int, message: str = ""):
        detail = f": {message[:200]}" if message else ""
        super().__init__(f"Provider returned HTTP {status_code}{detail}")
        self.status_code = status_code

    @property
    def transient(self) -> bool:
        return self.status_code >= 500 or self.status_code in TRANSIENT_STATUS_CODES


class CircuitOpenError(ProviderError):
    """The circuit for an endpoint is open; the call was rejected without touching the network."""

    def __init__(self, endpoint: str, retry_after: float):
        super().__init__(
            f"Circuit '{endpoint}' is open, retry after {retry_after:.1f}s"
        )
        self.endpoint = endpoint
        self.retry_after = retry_after


class ProviderUnavailableError(ProviderError):
    """Retries were exhausted; carries the last transient error."""

    def __init__(self, endpoint: str, attempts: int, last_error: Exception):
        super().__init__(
            f"Provider '{endpoint}' unavailable after {attempts} attempt(s): {last_error}"
        )
        self.endpoint = endpoint
        self.attempts = attempts
        self.last_error = last_error


class QueueFullError(ProviderError):
    """The concurrency gate is saturated and its wait queue is full."""

    def __init__(self, max_concurrent: int, max_queued: int):
        super().__init__(
            f"Concurrency limit reached ({max_concurrent} in flight, {max_queued} queued)"
        )
        self.max_concurrent = max_concurrent
        self.max_queued = max_queued


def is_transient(error: BaseException) -> bool:
    """True when an error is worth retrying and counts against the circuit breaker."""
    if isinstance(error, ProviderError):
        return bool(error.transient)
    return isinstance(error, (TimeoutError, ConnectionError))
