"""Single NTP request/response exchange over UDP.

One NtpTimeQuery owns one UDP endpoint and one timer. Three events race for
the outcome: the reply datagram, a socket error, and the timer. Whichever
arrives first completes the query; the others are dropped. The timer is armed
before name resolution, so timeout_ms bounds the whole exchange.
"""
import asyncio
import concurrent.futures
import enum
import logging
import socket
import threading
import time
from datetime import datetime
from typing import Callable, Optional

from .errors import MalformedResponse, NtpError, NtpSendError, NtpSocketError, NtpTimeout
from .packet import build_request, decode_response

logger = logging.getLogger(__name__)

DEFAULT_NTP_SERVER = "pool.ntp.org"
DEFAULT_NTP_PORT = 123
NTP_REPLY_TIMEOUT_MS = 10000


class QueryState(enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"


class _NtpClientProtocol(asyncio.DatagramProtocol):
    """Forwards endpoint events to the owning query."""

    def __init__(self, query: "NtpTimeQuery"):
        self._query = query
        self.closed = asyncio.get_running_loop().create_future()

    def connection_made(self, transport):
        self._query._attach(transport, self)

    def datagram_received(self, data, addr):
        self._query._on_datagram(data, addr)

    def error_received(self, exc):
        self._query._on_socket_error(exc)

    def connection_lost(self, exc):
        if exc is not None:
            self._query._on_socket_error(exc)
        if not self.closed.done():
            self.closed.set_result(None)


class NtpTimeQuery:
    """
    One NTP time query against a single server.

    Instances are single-use: build one, await run() once. The result is the
    server's Transmit Timestamp as an aware UTC datetime, or one of the
    NtpError subclasses:

      - NtpTimeout:        no reply within timeout_ms
      - NtpSendError:      resolution, connect or send failed
      - NtpSocketError:    the OS reported an error while awaiting the reply
      - MalformedResponse: the reply was shorter than 48 bytes

    Name resolution runs on a private worker thread that is abandoned (not
    joined) when the query completes, so a hanging resolver never holds up
    the caller past timeout_ms.
    """

    def __init__(
        self,
        server: str = DEFAULT_NTP_SERVER,
        port: int = DEFAULT_NTP_PORT,
        timeout_ms: float = NTP_REPLY_TIMEOUT_MS,
        family: int = socket.AF_INET,
    ):
        if not isinstance(server, str) or not server.strip():
            raise ValueError("server must be a non-empty host name or address")
        if isinstance(port, bool) or not isinstance(port, int) or not 1 <= port <= 65535:
            raise ValueError(f"port must be an integer in [1, 65535], got {port!r}")
        if isinstance(timeout_ms, bool) or not isinstance(timeout_ms, (int, float)) or timeout_ms <= 0:
            raise ValueError(f"timeout_ms must be positive, got {timeout_ms!r}")

        self.server = server.strip()
        self.port = port
        self.timeout_ms = timeout_ms
        self.family = family

        self.state = QueryState.PENDING
        self.request: Optional[bytes] = None

        self._started = False
        self._sending = False
        self._closed = False
        self._future: Optional[asyncio.Future] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._resolver: Optional[concurrent.futures.ThreadPoolExecutor] = None
        self._transport: Optional[asyncio.DatagramTransport] = None
        self._protocol: Optional[_NtpClientProtocol] = None
        self._t0 = 0.0

    @property
    def transport(self) -> Optional[asyncio.DatagramTransport]:
        return self._transport

    async def run(self) -> datetime:
        if self._started:
            raise RuntimeError("NtpTimeQuery instances are single-use")
        self._started = True

        loop = asyncio.get_running_loop()
        self._future = loop.create_future()
        self.request = build_request()
        self._t0 = time.monotonic()
        self._resolver = concurrent.futures.ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="ntp-resolve"
        )

        self._timer = loop.call_later(self.timeout_ms / 1000.0, self._on_timeout)
        opener = loop.create_task(self._open_and_send(loop))
        opener.add_done_callback(self._on_opener_done)
        try:
            return await self._future
        finally:
            if self.state is QueryState.PENDING:
                # cancelled from outside
                self._complete()
            if not opener.done():
                opener.cancel()
            self._resolver.shutdown(wait=False, cancel_futures=True)
            if self._protocol is not None:
                await self._protocol.closed

    def _new_socket(self, family: int, type_: int, proto: int) -> socket.socket:
        return socket.socket(family, type_, proto)

    async def _open_and_send(self, loop: asyncio.AbstractEventLoop) -> None:
        try:
            infos = await loop.run_in_executor(
                self._resolver, socket.getaddrinfo,
                self.server, self.port, self.family, socket.SOCK_DGRAM,
            )
            family, type_, proto, _, sockaddr = infos[0]
            sock = self._new_socket(family, type_, proto)
            try:
                sock.setblocking(False)
                sock.connect(sockaddr)
            except OSError:
                sock.close()
                raise
            await loop.create_datagram_endpoint(lambda: _NtpClientProtocol(self), sock=sock)
        except (OSError, UnicodeError) as e:
            # UnicodeError: IDNA encoding of a bad host name, e.g. an empty label
            logger.warning("NTP: cannot reach %s:%s: %s", self.server, self.port, e)
            self._complete(error=NtpSendError(f"cannot reach {self.server}:{self.port}: {e}"), cause=e)
            return

        if self.state is not QueryState.PENDING:
            return

        logger.debug("NTP: sending %d-byte request to %s:%s", len(self.request), self.server, self.port)
        self._sending = True
        try:
            # synchronous send failures come back through error_received
            self._transport.sendto(self.request)
        finally:
            self._sending = False

    def _on_opener_done(self, task: asyncio.Task) -> None:
        if task.cancelled() or task.exception() is None:
            return
        exc = task.exception()
        logger.error("NTP: opening endpoint to %s failed: %r", self.server, exc)
        self._complete(error=NtpSendError(f"cannot reach {self.server}:{self.port}: {exc}"), cause=exc)

    def _attach(self, transport: asyncio.DatagramTransport, protocol: _NtpClientProtocol) -> None:
        self._transport, self._protocol = transport, protocol
        if self.state is not QueryState.PENDING:
            self._close_transport()

    def _on_datagram(self, data: bytes, addr) -> None:
        if self.state is not QueryState.PENDING:
            logger.debug("NTP: dropping late %d-byte datagram from %s", len(data), addr)
            return
        try:
            when = decode_response(data)
        except MalformedResponse as e:
            logger.warning("NTP: malformed reply from %s: %s", addr, e)
            self._complete(error=e)
            return
        logger.info(
            "NTP: %s replied %s in %.1f ms",
            self.server, when.isoformat(), (time.monotonic() - self._t0) * 1000.0,
        )
        self._complete(result=when)

    def _on_socket_error(self, exc: Exception) -> None:
        if self.state is not QueryState.PENDING:
            logger.debug("NTP: dropping late socket error: %s", exc)
            return
        if self._sending:
            err = NtpSendError(f"send to {self.server}:{self.port} failed: {exc}")
        else:
            err = NtpSocketError(f"socket error talking to {self.server}:{self.port}: {exc}")
        logger.warning("NTP: %s", err)
        self._complete(error=err, cause=exc)

    def _on_timeout(self) -> None:
        if self.state is not QueryState.PENDING:
            return
        logger.warning("NTP: no reply from %s:%s within %s ms", self.server, self.port, self.timeout_ms)
        self._complete(error=NtpTimeout(f"timeout waiting for NTP response from {self.server}:{self.port}"))

    def _complete(self, result: Optional[datetime] = None, error: Optional[NtpError] = None,
                  cause: Optional[BaseException] = None) -> bool:
        """PENDING -> COMPLETED. Returns False if the query had already completed."""
        if self.state is not QueryState.PENDING:
            return False
        self.state = QueryState.COMPLETED
        logger.debug("NTP: query to %s completed (%s)", self.server, "error" if error else "ok")

        if self._timer is not None:
            self._timer.cancel()
        self._close_transport()

        if self._future is not None and not self._future.done():
            if error is not None:
                if cause is not None:
                    error.__cause__ = cause
                self._future.set_exception(error)
            else:
                self._future.set_result(result)
        return True

    def _close_transport(self) -> None:
        if self._transport is None or self._closed:
            return
        self._closed = True
        self._transport.close()


async def query_network_time(
    server: str = DEFAULT_NTP_SERVER,
    port: int = DEFAULT_NTP_PORT,
    timeout_ms: float = NTP_REPLY_TIMEOUT_MS,
) -> datetime:
    """Query one server from a running event loop."""
    return await NtpTimeQuery(server, port, timeout_ms).run()


def get_network_time(
    server: str = DEFAULT_NTP_SERVER,
    port: int = DEFAULT_NTP_PORT,
    timeout_ms: float = NTP_REPLY_TIMEOUT_MS,
) -> datetime:
    """Blocking query. Raises an NtpError subclass on failure."""
    query = NtpTimeQuery(server, port, timeout_ms)
    return asyncio.run(query.run())


def get_network_time_cb(
    on_done: Callable[[Optional[NtpError], Optional[datetime]], None],
    server: str = DEFAULT_NTP_SERVER,
    port: int = DEFAULT_NTP_PORT,
    timeout_ms: float = NTP_REPLY_TIMEOUT_MS,
) -> threading.Thread:
    """
    Run a query on a daemon thread and call on_done(error, date) exactly once.

    On success on_done receives (None, datetime); on failure (NtpError, None).
    Failures outside the NtpError family are wrapped in NtpSocketError with
    the original exception as __cause__. Returns the started thread so
    callers can join() it.
    """
    if not callable(on_done):
        raise TypeError("on_done must be callable")
    query = NtpTimeQuery(server, port, timeout_ms)

    def _worker():
        try:
            when = asyncio.run(query.run())
        except NtpError as e:
            on_done(e, None)
        except Exception as e:
            logger.error("NTP: query to %s failed unexpectedly: %r", query.server, e)
            err = NtpSocketError(f"NTP query to {query.server}:{query.port} failed: {e}")
            err.__cause__ = e
            on_done(err, None)
        else:
            on_done(None, when)

    t = threading.Thread(target=_worker, name=f"ntp-query-{query.server}", daemon=True)
    t.start()
    return t
