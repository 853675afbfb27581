"""Error types reported by an NTP time query."""


class NtpError(Exception):
    """Base class for every failure a query can report."""


class NtpTimeout(NtpError):
    """No reply arrived within the configured window."""


class NtpSendError(NtpError):
    """The request could not be dispatched (resolution, connect or send failure)."""


class NtpSocketError(NtpError):
    """The operating system reported a transport error while awaiting the reply."""


class MalformedResponse(NtpError):
    """The reply is too short to carry a Transmit Timestamp."""
