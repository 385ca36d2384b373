import importlib.metadata
import logging
import threading
from typing import Dict, List, Optional

import requests
from dnslib import DNSError, DNSQuestion, DNSRecord

from ..answer import Answer, answers_from_reply

logger = logging.getLogger(__name__)

try:
    SPLITDNS_VERSION = importlib.metadata.version("splitdns")
except (
    Exception
):  # pragma: no cover - defensive: metadata may be unavailable in some environments
    SPLITDNS_VERSION = "unknown"

DNS_MESSAGE = "application/dns-message"


class DoHError(Exception):
    """
    Brief: DNS-over-HTTPS transport error.

    Inputs:
    - message: Description of the error

    Outputs:
    - Exception instance
    """

    pass


def doh_query(
    url: str,
    query: bytes,
    *,
    timeout_ms: int = 1500,
    proxy: Optional[str] = None,
    session: Optional[requests.Session] = None,
    headers: Optional[Dict[str, str]] = None,
) -> bytes:
    """
    Brief: Perform a DNS-over-HTTPS POST (RFC 8484).

    Inputs:
    - url: Target DoH endpoint, e.g. https://dns.google/dns-query
    - query: Wire-format DNS query bytes
    - timeout_ms: Total timeout per request
    - proxy: Optional proxy URL for https requests
    - session: Optional requests.Session reused across queries
    - headers: Optional extra headers to include

    Outputs:
    - bytes: response body (wire-format DNS message)

    Notes:
    - Raises DoHError for non-200 responses or network/TLS errors.

    Example:
        >>> try:
        ...     doh_query('https://example.invalid/dns-query', b'\x00\x01')
        ... except DoHError:
        ...     pass
    """
    hdrs = {
        "Content-Type": DNS_MESSAGE,
        "Accept": DNS_MESSAGE,
        "User-Agent": f"splitdns v{SPLITDNS_VERSION}",
        **(headers or {}),
    }
    proxies = {"https": proxy} if proxy else None
    poster = session if session is not None else requests

    try:
        resp = poster.post(
            url,
            data=query,
            headers=hdrs,
            timeout=timeout_ms / 1000.0,
            proxies=proxies,
        )
    except requests.RequestException as e:
        raise DoHError(f"Network error: {e}") from e

    if resp.status_code != 200:
        raise DoHError(f"HTTP {resp.status_code}: {resp.reason}")
    return resp.content


class DoHClient:
    """Upstream handle that resolves through a DNS-over-HTTPS endpoint.

    Example use:
        >>> client = DoHClient("https://cloudflare-dns.com/dns-query")
        >>> # client("example.com.", 28) -> [Answer(...), ...]
    """

    def __init__(
        self,
        url: str,
        *,
        https_proxy: Optional[str] = None,
        timeout_ms: int = 2000,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.url = url
        self.https_proxy = https_proxy or None
        self.timeout_ms = int(timeout_ms)
        self._shared_session = session
        self._local = threading.local()

    @property
    def session(self) -> requests.Session:
        """Brief: Session used by the calling thread.

        Each calling thread gets its own requests.Session. A session passed
        to the constructor is shared by every thread instead.
        """
        if self._shared_session is not None:
            return self._shared_session
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            self._local.session = session
        return session

    def __call__(self, domain: str, qtype: int) -> List[Answer]:
        """
        Brief: Resolve (domain, qtype) through the DoH endpoint.

        Inputs:
        - domain: fully-qualified query name
        - qtype: record type code

        Outputs:
        - list[Answer]: answer section of the reply; empty on any transport or
          decoding failure
        """
        # RFC 8484 recommends ID 0 so responses stay cache friendly.
        request = DNSRecord(q=DNSQuestion(domain, qtype))
        request.header.id = 0
        try:
            body = doh_query(
                self.url,
                request.pack(),
                timeout_ms=self.timeout_ms,
                proxy=self.https_proxy,
                session=self.session,
            )
            reply = DNSRecord.parse(body)
        except (DoHError, DNSError) as e:
            logger.warning("doh upstream %s failed for %s %d: %s", self.url, domain, qtype, e)
            return []

        return answers_from_reply(reply)

    def __repr__(self) -> str:
        return f"DoHClient({self.url!r})"
