import socket
import threading

import ntplib
import pytest


def _server_reply(tx_timestamp: float) -> bytes:
    pkt = ntplib.NTPPacket(version=3, mode=4, tx_timestamp=tx_timestamp)
    pkt.stratum = 2
    return pkt.to_data()


class FakeNtpServer(threading.Thread):
    """Loopback UDP server answering each request with responder(request)."""

    def __init__(self, responder):
        super().__init__(daemon=True)
        self.responder = responder
        self.requests = []
        self._stop_evt = threading.Event()
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self.sock.bind(("127.0.0.1", 0))
        self.sock.settimeout(0.05)
        self.port = self.sock.getsockname()[1]

    def run(self):
        while not self._stop_evt.is_set():
            try:
                data, addr = self.sock.recvfrom(1024)
            except socket.timeout:
                continue
            except OSError:
                break
            self.requests.append(data)
            for reply in self.responder(data) or ():
                self.sock.sendto(reply, addr)

    def stop(self):
        self._stop_evt.set()
        self.join(timeout=2.0)
        self.sock.close()


@pytest.fixture
def ntp_server():
    servers = []

    def _start(responder):
        srv = FakeNtpServer(responder)
        srv.start()
        servers.append(srv)
        return srv

    yield _start
    for srv in servers:
        srv.stop()


@pytest.fixture
def closed_port():
    s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    s.bind(("127.0.0.1", 0))
    port = s.getsockname()[1]
    s.close()
    return port


@pytest.fixture
def ntp_reply():
    """Build a server-mode NTP packet carrying tx_timestamp (seconds since 1900)."""
    return _server_reply
