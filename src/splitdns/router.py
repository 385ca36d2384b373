from __future__ import annotations

import logging
from typing import Dict, Iterator, List, Optional

from .answer import UpstreamHandle

logger = logging.getLogger(__name__)


def parent_domains(domain: str) -> Iterator[str]:
    """Brief: Yield a fully-qualified domain followed by each of its ancestors.

    Inputs:
      - domain: Fully-qualified domain name (trailing dot).

    Outputs:
      - Iterator[str]: The domain itself, then one leftmost label stripped at a
        time, ending with the root ".".

    Example:
      >>> list(parent_domains("a.example.com."))
      ['a.example.com.', 'example.com.', 'com.', '.']
    """

    current = domain
    while current and current != ".":
        yield current
        _, sep, rest = current.partition(".")
        if not sep:
            break
        current = rest or "."
    yield "."


class DomainRouter:
    """Maps domains to upstream handles by longest-suffix match.

    Brief:
      A rule registered for ``example.com.`` also covers every subdomain of
      ``example.com.`` unless a more specific rule exists. The table is filled
      once at startup and only read afterwards, so lookups take no lock.

    Example use:
      >>> router = DomainRouter()
      >>> router.add("example.com.", "A")
      >>> router.add("mail.example.com.", "B")
      >>> router.route("x.mail.example.com.")
      'B'
      >>> router.route("example.com.")
      'A'
      >>> router.route("other.com.") is None
      True
    """

    def __init__(self) -> None:
        self._routes: Dict[str, UpstreamHandle] = {}

    def add(self, domain: str, handle: UpstreamHandle) -> None:
        """Brief: Register ``handle`` for ``domain`` and its subdomains.

        Inputs:
          - domain: Fully-qualified, already normalized domain.
          - handle: Upstream handle used for matching queries.

        Outputs:
          - None. Registering the same domain again replaces the earlier handle.
        """

        if domain in self._routes:
            logger.debug("Replacing route for %s", domain)
        self._routes[domain] = handle

    def route(self, domain: str) -> Optional[UpstreamHandle]:
        """Brief: Return the handle bound to the most specific matching domain.

        Inputs:
          - domain: Fully-qualified, normalized query name.

        Outputs:
          - The registered handle, or None when no configured domain matches.
        """

        for candidate in parent_domains(domain):
            handle = self._routes.get(candidate)
            if handle is not None:
                return handle
        return None

    def domains(self) -> List[str]:
        return sorted(self._routes)

    def __contains__(self, domain: object) -> bool:
        return domain in self._routes

    def __len__(self) -> int:
        return len(self._routes)
