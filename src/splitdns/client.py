"""Split-horizon query dispatcher.

Brief:
  DNSClient is the single entry point used by listeners. For every query it
  applies a fixed precedence: static override, cached answer, then the
  upstream chosen by longest-suffix domain routing.

Inputs:
  - Forwarding rules (see splitdns.config.config_parser.ForwardRule).

Outputs:
  - Lists of splitdns.answer.Answer.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

from dnslib import QTYPE

from .answer import Answer, UpstreamHandle
from .cache import AnswerCache
from .router import DomainRouter
from .upstreams import UpstreamKind, build_handle, parse_upstream

logger = logging.getLogger(__name__)

STATIC_TTL = 60


def fqdn(name: str) -> str:
    """Brief: Normalize a domain to lower-case fully-qualified form.

    Inputs:
      - name: Domain with or without a trailing dot.

    Outputs:
      - str: Lower-cased name ending in ".".

    Example:
      >>> fqdn("WWW.Example.com")
      'www.example.com.'
      >>> fqdn(".")
      '.'
    """

    name = str(name).strip().lower()
    return name if name.endswith(".") else name + "."


def cache_key(domain: str, qtype: int) -> str:
    return f"{domain}|{int(qtype)}"


class DNSClient:
    """Resolve queries through static overrides, the answer cache and routing.

    Brief:
      Routing and static tables are filled once by init() and read without
      locking afterwards; the answer cache is the only shared mutable state and
      synchronizes internally. Each DNSClient owns its own cache.

    Example use:
      >>> from splitdns.answer import Answer
      >>> client = DNSClient()
      >>> client.router.add("example.com.", lambda d, t: [Answer(d, t, 30, "1.2.3.4")])
      >>> client.query("www.example.com", 1)
      [Answer(name='www.example.com.', type=1, ttl=30, data='1.2.3.4')]
    """

    def __init__(
        self,
        *,
        cache: Optional[AnswerCache] = None,
        router: Optional[DomainRouter] = None,
        timeout_ms: int = 2000,
    ) -> None:
        self.cache = cache if cache is not None else AnswerCache()
        self.router = router if router is not None else DomainRouter()
        self.static_ipv4: Dict[str, str] = {}
        self.static_ipv6: Dict[str, str] = {}
        self.timeout_ms = int(timeout_ms)

    def init(self, forwards: Iterable[object]) -> None:
        """Brief: Populate static tables and routes from forwarding rules.

        Inputs:
          - forwards: Iterable of rules exposing ``dns`` (target string),
            ``domain`` (list of domains) and ``https_proxy`` (optional).

        Outputs:
          - None.

        Raises:
          - UpstreamConfigError: when a rule's target cannot be parsed. Rules
            with unsupported or not yet implemented schemes are logged and
            skipped.
        """

        for forward in forwards:
            target = str(getattr(forward, "dns"))
            domains = [fqdn(d) for d in (getattr(forward, "domain", None) or [])]

            try:
                spec = parse_upstream(target)
            except ValueError:
                logger.error("invalid config: dns=%s", target)
                raise

            if spec.kind is UpstreamKind.STATIC_V4:
                for domain in domains:
                    self.static_ipv4[domain] = str(spec.host)
                continue
            if spec.kind is UpstreamKind.STATIC_V6:
                for domain in domains:
                    self.static_ipv6[domain] = str(spec.host)
                continue
            if spec.kind is UpstreamKind.UNSUPPORTED:
                logger.error("%s: dns=%s", spec.reason, target)
                continue

            handle = build_handle(
                spec,
                timeout_ms=self.timeout_ms,
                https_proxy=getattr(forward, "https_proxy", None),
            )
            for domain in domains:
                self.router.add(domain, handle)
            logger.debug("Routing %s via %s", domains, target)

    def lookup_static(self, domain: str, qtype: int) -> Optional[str]:
        """Brief: Return the static address configured for domain, if any.

        Inputs:
          - domain: Normalized fully-qualified domain.
          - qtype: Record type; only A and AAAA have static tables.

        Outputs:
          - Literal address string, or None.
        """

        if qtype == QTYPE.A:
            return self.static_ipv4.get(domain)
        if qtype == QTYPE.AAAA:
            return self.static_ipv6.get(domain)
        return None

    def query(self, name: str, qtype: int) -> List[Answer]:
        """Brief: Resolve one (name, qtype) query.

        Inputs:
          - name: Query name in any case, with or without trailing dot.
          - qtype: Record type code.

        Outputs:
          - list[Answer]: Possibly empty. Never raises.
        """

        logger.info("query domain=%s type=%d", name, qtype)
        domain = fqdn(name)

        static_ip = self.lookup_static(domain, qtype)
        if static_ip is not None:
            logger.debug("static hit domain=%s type=%d", domain, qtype)
            return [Answer(name=domain, type=int(qtype), ttl=STATIC_TTL, data=static_ip)]

        key = cache_key(domain, qtype)
        cached, found = self.cache.get(key)
        if found:
            logger.debug("cache hit domain=%s type=%d", domain, qtype)
            return cached

        handle: Optional[UpstreamHandle] = self.router.route(domain)
        if handle is None:
            logger.debug("not found domain=%s type=%d", domain, qtype)
            return []

        try:
            answers = list(handle(domain, int(qtype)) or [])
        except Exception:
            # Built-in transports return [] on failure; this guards custom handles.
            logger.exception("upstream %r failed for %s %d", handle, domain, qtype)
            return []

        self.cache.set(key, answers)
        return answers
