"""Upstream transports (plain UDP and DNS-over-HTTPS)."""
