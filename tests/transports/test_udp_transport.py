"""
Brief: Unit tests for UDP upstream transport using a local UDP stub server.

Inputs:
  - None

Outputs:
  - None
"""

import logging
import socket
import threading
import time

import pytest
from dnslib import QTYPE, RR, A, DNSRecord

from splitdns.answer import Answer
from splitdns.transports.udp import UDPClient, UDPError, udp_query


class _UDPStub:
    """
    Brief: Local UDP DNS server answering every A query with 10.9.8.7.

    Inputs:
      - mode: 'answer', 'echo', 'bad_id', 'garbage' or 'silent'

    Outputs:
      - Stub with .addr and .received
    """

    def __init__(self, mode="answer"):
        self.mode = mode
        self.received = []
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self.sock.bind(("127.0.0.1", 0))
        self.addr = self.sock.getsockname()
        self._stop = False
        self.thread = threading.Thread(target=self._loop, daemon=True)

    def start(self):
        self.thread.start()
        time.sleep(0.02)

    def _reply(self, data):
        if self.mode == "echo":
            return data
        if self.mode == "garbage":
            return b"\x00"
        req = DNSRecord.parse(data)
        reply = req.reply()
        reply.add_answer(RR(req.q.qname, QTYPE.A, rdata=A("10.9.8.7"), ttl=120))
        if self.mode == "bad_id":
            reply.header.id = (req.header.id + 1) & 0xFFFF
        return reply.pack()

    def _loop(self):
        while not self._stop:
            try:
                self.sock.settimeout(0.2)
                data, peer = self.sock.recvfrom(4096)
            except OSError:
                continue
            self.received.append(data)
            if self.mode == "silent":
                continue
            try:
                self.sock.sendto(self._reply(data), peer)
            except OSError:
                pass

    def close(self):
        self._stop = True
        try:
            self.sock.close()
        except OSError:
            pass


@pytest.fixture
def udp_stub(request):
    s = _UDPStub(getattr(request, "param", "answer"))
    s.start()
    try:
        yield s
    finally:
        s.close()


@pytest.mark.parametrize("udp_stub", ["echo"], indirect=True)
def test_udp_query_roundtrip(udp_stub):
    q = b"\x12\x34hello"
    resp = udp_query(udp_stub.addr[0], udp_stub.addr[1], q, timeout_ms=500)
    assert resp == q


@pytest.mark.parametrize("udp_stub", ["silent"], indirect=True)
def test_udp_query_timeout_raises(udp_stub):
    with pytest.raises(UDPError):
        udp_query(udp_stub.addr[0], udp_stub.addr[1], b"\x00\x01", timeout_ms=100)


def test_udp_client_returns_answers(udp_stub):
    """
    Brief: UDPClient sends a query for (domain, qtype) and converts the reply.

    Inputs:
      - stub answering A 10.9.8.7 ttl 120

    Outputs:
      - None: Asserts answers and the question sent upstream
    """
    client = UDPClient(udp_stub.addr[0], udp_stub.addr[1], timeout_ms=500)
    answers = client("www.example.com.", QTYPE.A)
    assert answers == [Answer("www.example.com.", 1, 120, "10.9.8.7")]

    sent = DNSRecord.parse(udp_stub.received[0])
    assert str(sent.q.qname) == "www.example.com."
    assert sent.q.qtype == QTYPE.A


@pytest.mark.parametrize("udp_stub", ["silent"], indirect=True)
def test_udp_client_timeout_returns_empty(udp_stub, caplog):
    client = UDPClient(udp_stub.addr[0], udp_stub.addr[1], timeout_ms=100)
    with caplog.at_level(logging.WARNING, logger="splitdns.transports.udp"):
        assert client("example.com.", QTYPE.A) == []
    assert any("failed" in r.getMessage() for r in caplog.records)


@pytest.mark.parametrize("udp_stub", ["garbage"], indirect=True)
def test_udp_client_undecodable_reply_returns_empty(udp_stub):
    client = UDPClient(udp_stub.addr[0], udp_stub.addr[1], timeout_ms=500)
    assert client("example.com.", QTYPE.A) == []


@pytest.mark.parametrize("udp_stub", ["bad_id"], indirect=True)
def test_udp_client_mismatched_id_returns_empty(udp_stub):
    client = UDPClient(udp_stub.addr[0], udp_stub.addr[1], timeout_ms=500)
    assert client("example.com.", QTYPE.A) == []


def test_udp_client_repr():
    assert repr(UDPClient("10.0.0.1", 5300)) == "UDPClient('10.0.0.1', 5300)"
