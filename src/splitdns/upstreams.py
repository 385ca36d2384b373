"""Upstream target parsing.

Brief:
  Forwarding rules name their upstream with a URL-like target string such as
  ``udp://8.8.8.8:53`` or ``doh://dns.google/dns-query``. parse_upstream()
  turns that string into an UpstreamSpec once, at configuration time, so the
  resolver only ever stores ready-to-call handles or static addresses.

Inputs:
  - Target strings from configuration.

Outputs:
  - UpstreamSpec values and Upstream Handles.
"""

from __future__ import annotations

import enum
import ipaddress
import urllib.parse
from dataclasses import dataclass
from typing import Optional

from .answer import UpstreamHandle
from .transports.doh import DoHClient
from .transports.udp import UDPClient

DEFAULT_DNS_PORT = 53


class UpstreamConfigError(ValueError):
    """Brief: An upstream target string cannot be parsed; startup must abort."""


class UpstreamKind(enum.Enum):
    STATIC_V4 = "ipv4"
    STATIC_V6 = "ipv6"
    UDP = "udp"
    DOH = "doh"
    UNSUPPORTED = "unsupported"


# Scheme names that are reserved for transports not implemented yet.
_WIP_SCHEMES = frozenset({"tcp", "dot"})


@dataclass(frozen=True)
class UpstreamSpec:
    """Brief: Parsed form of one upstream target.

    Inputs:
      - kind: UpstreamKind variant.
      - target: Original target string (for diagnostics).
      - host: Host or literal address (STATIC_V4/STATIC_V6/UDP).
      - port: UDP port.
      - url: https URL for DOH.
      - reason: Why an UNSUPPORTED target was rejected.
    """

    kind: UpstreamKind
    target: str
    host: Optional[str] = None
    port: int = DEFAULT_DNS_PORT
    url: Optional[str] = None
    reason: Optional[str] = None


def parse_upstream(target: str) -> UpstreamSpec:
    """Brief: Parse an upstream target string into an UpstreamSpec.

    Inputs:
      - target: Target such as ``udp://1.1.1.1:53``, ``doh://host/dns-query``,
        ``ipv4://10.0.0.1`` or ``ipv6://[fd00::1]``.

    Outputs:
      - UpstreamSpec. Unknown schemes and the reserved ``tcp``/``dot`` schemes
        produce kind UNSUPPORTED rather than an error.

    Raises:
      - UpstreamConfigError: when the target cannot be parsed or is missing the
        host its scheme needs.

    Example:
      >>> parse_upstream("udp://8.8.8.8").port
      53
      >>> parse_upstream("doh://dns.google/dns-query").url
      'https://dns.google/dns-query'
      >>> parse_upstream("dot://1.1.1.1").kind
      <UpstreamKind.UNSUPPORTED: 'unsupported'>
    """

    try:
        parsed = urllib.parse.urlsplit(str(target).strip())
        scheme = parsed.scheme.lower()
        host = parsed.hostname
        port = parsed.port
    except ValueError as exc:
        raise UpstreamConfigError(f"invalid upstream {target!r}: {exc}") from exc

    if scheme in _WIP_SCHEMES:
        return UpstreamSpec(kind=UpstreamKind.UNSUPPORTED, target=target, reason="WIP")

    try:
        kind = UpstreamKind(scheme)
    except ValueError:
        kind = UpstreamKind.UNSUPPORTED
    if kind is UpstreamKind.UNSUPPORTED:
        return UpstreamSpec(
            kind=UpstreamKind.UNSUPPORTED, target=target, reason="unsupported scheme"
        )

    if not host:
        raise UpstreamConfigError(f"invalid upstream {target!r}: missing host")

    if kind is UpstreamKind.DOH:
        url = urllib.parse.urlunsplit(parsed._replace(scheme="https"))
        return UpstreamSpec(kind=kind, target=target, host=host, url=url)

    if kind is UpstreamKind.UDP:
        return UpstreamSpec(
            kind=kind, target=target, host=host, port=port or DEFAULT_DNS_PORT
        )

    address_cls = (
        ipaddress.IPv4Address if kind is UpstreamKind.STATIC_V4 else ipaddress.IPv6Address
    )
    try:
        address = str(address_cls(host))
    except ValueError as exc:
        raise UpstreamConfigError(f"invalid upstream {target!r}: {exc}") from exc
    return UpstreamSpec(kind=kind, target=target, host=address)


def build_handle(
    spec: UpstreamSpec,
    *,
    timeout_ms: int = 2000,
    https_proxy: Optional[str] = None,
) -> UpstreamHandle:
    """Brief: Construct the Upstream Handle for a UDP or DoH spec.

    Inputs:
      - spec: UpstreamSpec of kind UDP or DOH.
      - timeout_ms: Per-request timeout handed to the transport.
      - https_proxy: Optional proxy URL used for DoH requests.

    Outputs:
      - Callable (domain, qtype) -> list[Answer].

    Raises:
      - ValueError: for kinds that do not resolve through a transport.
    """

    if spec.kind is UpstreamKind.UDP:
        return UDPClient(str(spec.host), spec.port, timeout_ms=timeout_ms)
    if spec.kind is UpstreamKind.DOH:
        return DoHClient(str(spec.url), https_proxy=https_proxy, timeout_ms=timeout_ms)
    raise ValueError(f"{spec.kind.name} upstreams have no transport handle")
