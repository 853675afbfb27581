"""Minimal NTP client: ask one server for the current UTC time."""

from .errors import MalformedResponse, NtpError, NtpSendError, NtpSocketError, NtpTimeout
from .packet import (
    NTP_EPOCH,
    NTP_PACKET_SIZE,
    TRANSMIT_TIMESTAMP_OFFSET,
    build_request,
    decode_response,
    ntp_to_datetime,
    parse_response,
)
from .query import (
    DEFAULT_NTP_PORT,
    DEFAULT_NTP_SERVER,
    NTP_REPLY_TIMEOUT_MS,
    NtpTimeQuery,
    QueryState,
    get_network_time,
    get_network_time_cb,
    query_network_time,
)

__all__ = [
    "DEFAULT_NTP_PORT",
    "DEFAULT_NTP_SERVER",
    "NTP_REPLY_TIMEOUT_MS",
    "NTP_EPOCH",
    "NTP_PACKET_SIZE",
    "TRANSMIT_TIMESTAMP_OFFSET",
    "NtpTimeQuery",
    "QueryState",
    "get_network_time",
    "get_network_time_cb",
    "query_network_time",
    "build_request",
    "decode_response",
    "ntp_to_datetime",
    "parse_response",
    "NtpError",
    "NtpTimeout",
    "NtpSendError",
    "NtpSocketError",
    "MalformedResponse",
]
