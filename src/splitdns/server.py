from __future__ import annotations

import logging
import socket
import socketserver
from typing import Optional

from dnslib import QTYPE, RCODE, RR, DNSError, DNSRecord

from .client import DNSClient

logger = logging.getLogger(__name__)

# Largest reply a client without EDNS(0) accepts over UDP (RFC 1035).
CLASSIC_UDP_PAYLOAD = 512


def _client_opt(req: DNSRecord) -> Optional[RR]:
    """Brief: Return the client's EDNS(0) OPT record, if it sent one."""
    for rr in req.ar or []:
        if rr.rtype == QTYPE.OPT:
            return rr
    return None


def udp_payload_limit(req: DNSRecord) -> int:
    """Brief: Largest UDP reply the client advertised it can receive.

    Inputs:
      - req: Parsed client query.

    Outputs:
      - int: The OPT payload size (never below 512), or 512 without EDNS(0).

    Example:
      >>> udp_payload_limit(DNSRecord.question("example.com"))
      512
    """
    opt = _client_opt(req)
    if opt is None:
        return CLASSIC_UDP_PAYLOAD
    return max(CLASSIC_UDP_PAYLOAD, min(int(opt.rclass), 65535))


def _new_reply(req: DNSRecord) -> DNSRecord:
    reply = req.reply(ra=1, aa=0)
    opt = _client_opt(req)
    if opt is not None:
        # Echo the client's OPT so it sees EDNS(0) in the reply.
        reply.add_ar(opt)
    return reply


def resolve_query_bytes(client: DNSClient, data: bytes) -> bytes:
    """Resolve a single DNS wire query and return the wire response.

    Inputs:
      - client: DNSClient used to answer the question.
      - data: Wire-format DNS query bytes.
    Outputs:
      - bytes: Wire-format DNS response, or b"" when the query cannot be
        parsed (the datagram is dropped).

    Answers whose data cannot be encoded for their record type are left out
    of the reply. Unexpected failures while resolving produce SERVFAIL. A
    reply larger than udp_payload_limit() is sent without answers and with
    the TC bit set so the client knows it was truncated.

    Example:
      >>> resp = resolve_query_bytes(client, DNSRecord.question("example.com").pack())
    """
    try:
        req = DNSRecord.parse(data)
    except DNSError as e:
        logger.debug("Dropping unparseable query: %s", e)
        return b""

    reply = _new_reply(req)
    if not req.questions:
        reply.header.rcode = RCODE.FORMERR
        return reply.pack()

    q = req.q
    try:
        answers = client.query(str(q.qname), int(q.qtype))
        for ans in answers:
            try:
                reply.add_answer(ans.to_rr())
            except ValueError as e:
                logger.debug("Skipping answer %r: %s", ans, e)
    except Exception:
        logger.exception("Failed to resolve %s %s", q.qname, q.qtype)
        reply = _new_reply(req)
        reply.header.rcode = RCODE.SERVFAIL

    wire = reply.pack()
    limit = udp_payload_limit(req)
    if len(wire) > limit:
        logger.debug(
            "Truncating reply for %s %s: %d bytes > %d", q.qname, q.qtype, len(wire), limit
        )
        reply = _new_reply(req)
        reply.header.tc = 1
        wire = reply.pack()
    return wire


class DNSUDPHandler(socketserver.BaseRequestHandler):
    """
    Handles UDP DNS requests.
    This class is instantiated for each incoming DNS query.

    DNSServer binds ``client`` on a per-server subclass so that separate
    servers never share resolver state.
    """

    client: DNSClient

    def handle(self):
        data, sock = self.request
        wire = resolve_query_bytes(self.client, data)
        if not wire:
            return
        try:
            sock.sendto(wire, self.client_address)
        except OSError as e:
            logger.warning("Failed to send response to %s: %s", self.client_address, e)


class DNSServer:
    """A threaded UDP DNS server wrapping a DNSClient.

    Example use:
        >>> import threading
        >>> server = DNSServer("127.0.0.1", 5355, DNSClient())
        >>> t = threading.Thread(target=server.serve_forever, daemon=True)
        >>> t.start()
        >>> server.stop()
    """

    def __init__(self, host: str, port: int, client: DNSClient) -> None:
        """Initialize and bind the UDP server.

        Inputs:
            host: The host to listen on.
            port: The port to listen on (0 picks a free port).
            client: DNSClient answering the queries.
        """
        handler_cls = type("BoundDNSUDPHandler", (DNSUDPHandler,), {"client": client})
        server_cls = socketserver.ThreadingUDPServer
        if ":" in host:
            server_cls = type(
                "ThreadingUDP6Server", (server_cls,), {"address_family": socket.AF_INET6}
            )
        try:
            self.server = server_cls((host, port), handler_cls)
        except PermissionError as e:
            logger.error(
                "Permission denied when binding to %s:%d. Try a port >1024 or run with elevated privileges. Original error: %s",
                host,
                port,
                e,
            )
            raise

        # Ensure request handler threads do not block shutdown
        self.server.daemon_threads = True
        self.address = self.server.server_address
        logger.debug("DNS UDP server bound to %s:%d", self.address[0], self.address[1])

    def serve_forever(self) -> None:
        """Run the UDP server loop until stop() is called."""
        try:
            self.server.serve_forever()
        except KeyboardInterrupt:
            pass

    def stop(self) -> None:
        """Request shutdown and close the underlying UDP socket.

        Inputs:
          - None
        Outputs:
          - None; must be called from a thread other than serve_forever().
        """
        try:
            self.server.shutdown()
        except Exception:
            logger.exception("Error while shutting down UDP server")
        try:
            self.server.server_close()
        except Exception:
            logger.exception("Error while closing UDP server socket")
