import logging
import socket
from typing import List

from dnslib import DNSError, DNSQuestion, DNSRecord

from ..answer import Answer, answers_from_reply

logger = logging.getLogger(__name__)


class UDPError(Exception):
    """
    Brief: DNS-over-UDP transport error.

    Inputs:
    - message: description

    Outputs:
    - Exception instance
    """

    pass


def udp_query(
    host: str,
    port: int,
    query: bytes,
    *,
    timeout_ms: int = 2000,
) -> bytes:
    """
    Brief: Perform a single UDP DNS exchange.

    Inputs:
    - host: upstream resolver address (IPv4 or IPv6 literal, or hostname)
    - port: upstream UDP port
    - query: wire-format DNS query bytes
    - timeout_ms: socket timeout in milliseconds

    Outputs:
    - bytes: wire-format DNS response

    Example:
        >>> try:
        ...     udp_query('127.0.0.1', 9, b'\x00\x01', timeout_ms=100)
        ... except UDPError:
        ...     pass
    """
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    try:
        with socket.socket(family, socket.SOCK_DGRAM) as s:
            s.settimeout(timeout_ms / 1000.0)
            s.sendto(query, (host, int(port)))
            data, _ = s.recvfrom(4096)
            return data
    except OSError as e:
        raise UDPError(f"UDP error: {e}") from e


class UDPClient:
    """Upstream handle that forwards queries to one server over plain UDP.

    Example use:
        >>> client = UDPClient("8.8.8.8", 53, timeout_ms=1500)
        >>> # client("example.com.", 1) -> [Answer(...), ...]
    """

    def __init__(self, host: str, port: int = 53, *, timeout_ms: int = 2000) -> None:
        self.host = host
        self.port = int(port)
        self.timeout_ms = int(timeout_ms)

    def __call__(self, domain: str, qtype: int) -> List[Answer]:
        """
        Brief: Resolve (domain, qtype) against this server.

        Inputs:
        - domain: fully-qualified query name
        - qtype: record type code

        Outputs:
        - list[Answer]: answer section of the reply; empty on any transport or
          decoding failure
        """
        request = DNSRecord(q=DNSQuestion(domain, qtype))
        try:
            wire = udp_query(
                self.host, self.port, request.pack(), timeout_ms=self.timeout_ms
            )
            reply = DNSRecord.parse(wire)
        except (UDPError, DNSError) as e:
            logger.warning(
                "udp upstream %s:%d failed for %s %d: %s",
                self.host,
                self.port,
                domain,
                qtype,
                e,
            )
            return []

        if reply.header.id != request.header.id:
            logger.warning(
                "udp upstream %s:%d replied with mismatched id for %s",
                self.host,
                self.port,
                domain,
            )
            return []
        if reply.header.tc:
            logger.debug("udp upstream %s:%d truncated reply for %s", self.host, self.port, domain)

        return answers_from_reply(reply)

    def __repr__(self) -> str:
        return f"UDPClient({self.host!r}, {self.port})"
