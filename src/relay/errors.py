"""Error taxonomy for the relay.

Connection-fatal errors (``UpstreamUnavailable``, ``UpstreamSendFailure``)
end a single browser connection; ``MalformedClientFrame`` only drops a frame;
``RequestHandlingFailure`` is contained at the HTTP request boundary;
``MissingCredential`` aborts startup.
"""


class RelayError(Exception):
    """Base class for all relay errors."""


class UpstreamUnavailable(RelayError):
    """Upstream session could not be established.

    Raised for network failures, handshake rejection (e.g. bad credential),
    protocol errors and connect timeouts.
    """


class UpstreamSendFailure(RelayError):
    """Forwarding an event to an established upstream session failed."""


class MalformedClientFrame(RelayError):
    """A browser frame could not be decoded as an event.

    Attributes:
        raw: The offending frame, exactly as received
        reason: Human-readable decode failure
    """

    def __init__(self, raw: str | bytes, reason: str) -> None:
        super().__init__(reason)
        self.raw = raw
        self.reason = reason


class RequestHandlingFailure(RelayError):
    """Uncaught error while servicing a plain HTTP request."""

    def __init__(self, path: str, cause: BaseException) -> None:
        super().__init__(f"Error occurred handling {path}: {cause}")
        self.path = path
        self.cause = cause


class MissingCredential(RelayError):
    """Upstream credential is not configured."""

    def __init__(self, variable: str = "OPENAI_API_KEY") -> None:
        super().__init__(f'Environment variable "{variable}" is missing.')
        self.variable = variable
