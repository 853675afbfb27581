"""NTP client packet construction and Transmit Timestamp decoding."""
from datetime import datetime, timedelta, timezone

import ntplib

from .errors import MalformedResponse

NTP_PACKET_SIZE = 48
TRANSMIT_TIMESTAMP_OFFSET = 40

NTP_VERSION = 3
MODE_CLIENT = 3

NTP_EPOCH = datetime(1900, 1, 1, tzinfo=timezone.utc)


def build_request() -> bytes:
    """Return a fresh 48-byte client request (LI=0, VN=3, Mode=3, byte 0 = 0x1B)."""
    return ntplib.NTPPacket(version=NTP_VERSION, mode=MODE_CLIENT).to_data()


def parse_response(data: bytes) -> ntplib.NTPPacket:
    """Parse a server reply; raises MalformedResponse when it is shorter than 48 bytes."""
    pkt = ntplib.NTPPacket()
    try:
        pkt.from_data(data)
    except ntplib.NTPException as e:
        raise MalformedResponse(
            f"NTP reply too short: {len(data)} bytes, expected at least {NTP_PACKET_SIZE}"
        ) from e
    return pkt


def ntp_to_milliseconds(timestamp: float) -> float:
    return timestamp * 1000


def ntp_to_datetime(timestamp: float) -> datetime:
    """Convert an era-0 NTP timestamp (seconds since 1900) to an aware UTC datetime.

    Resolution is one millisecond.
    """
    return NTP_EPOCH + timedelta(milliseconds=round(ntp_to_milliseconds(timestamp)))


def decode_response(data: bytes) -> datetime:
    return ntp_to_datetime(parse_response(data).tx_timestamp)
