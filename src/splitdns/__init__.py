"""splitdns package"""

from .answer import Answer
from .client import DNSClient

__all__ = ["Answer", "DNSClient"]
