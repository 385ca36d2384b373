"""Answer records returned by the resolver pipeline.

Brief:
  Upstream handles, the answer cache and the dispatcher all exchange plain
  Answer objects rather than wire-format messages. This module owns the
  conversion between Answer and dnslib resource records so that the core never
  touches DNS serialization itself.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Callable, List

from dnslib import QTYPE, RR, DNSRecord


@dataclass(frozen=True)
class Answer:
    """Brief: One resolved DNS record.

    Inputs:
      - name: Fully-qualified owner name (trailing dot).
      - type: Record type code (e.g. 1 for A, 28 for AAAA).
      - ttl: Seconds the record may still be treated as valid.
      - data: Record value in presentation (zone-file) form, e.g. a TXT record
        with several strings is kept as '"part one" "part two"'.

    Outputs:
      - Answer instance.

    Example:
      >>> Answer("example.com.", 1, 300, "93.184.216.34").with_ttl(60)
      Answer(name='example.com.', type=1, ttl=60, data='93.184.216.34')
    """

    name: str
    type: int
    ttl: int
    data: str

    def with_ttl(self, ttl: int) -> "Answer":
        """Brief: Return a copy of this answer carrying a different ttl."""

        return replace(self, ttl=int(ttl))

    def to_rr(self) -> RR:
        """Brief: Encode this answer as a dnslib resource record.

        Inputs:
          - None.

        Outputs:
          - dnslib.RR built by parsing the zone-file form of the record.

        Raises:
          - ValueError: when the record type is unknown to dnslib or the data
            cannot be parsed for that type.
        """

        try:
            type_name = QTYPE[self.type]
        except Exception as exc:
            raise ValueError(f"unknown record type {self.type}") from exc

        zone_line = f"{self.name} {int(self.ttl)} IN {type_name} {self.data}"
        try:
            records = RR.fromZone(zone_line)
        except Exception as exc:
            raise ValueError(f"cannot encode {zone_line!r}: {exc}") from exc
        if not records:
            raise ValueError(f"cannot encode {zone_line!r}")
        return records[0]


# (domain, record type) -> answers. Supplied by transports, consumed by the
# router and the dispatcher.
UpstreamHandle = Callable[[str, int], List[Answer]]


def answers_from_reply(reply: DNSRecord) -> List[Answer]:
    """Brief: Convert the answer section of a dnslib reply into Answers.

    Inputs:
      - reply: Parsed dnslib.DNSRecord returned by an upstream server.

    Outputs:
      - list[Answer]: One Answer per RR in the answer section, in order.

    Example:
      >>> from dnslib import A, RR, DNSRecord
      >>> q = DNSRecord.question("example.com", "A")
      >>> r = q.reply()
      >>> r.add_answer(RR("example.com", rdata=A("1.2.3.4"), ttl=30))
      >>> answers_from_reply(r)
      [Answer(name='example.com.', type=1, ttl=30, data='1.2.3.4')]
    """

    return [
        Answer(name=str(rr.rname), type=int(rr.rtype), ttl=int(rr.ttl), data=rr.rdata.toZone())
        for rr in reply.rr
    ]
