from __future__ import annotations

import argparse
import logging
import signal
import threading
from typing import List, Optional

from .client import DNSClient
from .config.config_parser import parse_config_file
from .config.logging_config import init_logging
from .server import DNSServer
from .upstreams import UpstreamConfigError


def main(argv: List[str] | None = None) -> int:
    """
    Main entry point for the split-horizon DNS server.
    Parses arguments, loads configuration, builds the resolver and serves UDP
    until a termination signal arrives.

    Args:
        argv: Command-line arguments.

    Returns:
        An exit code: 0 on clean shutdown, 1 on configuration or startup
        failure, 2 on SIGTERM/SIGINT.

    Example use:
        CLI:
            splitdns --config config.yaml -v INTERNAL_DNS=udp://10.0.0.53
    """
    parser = argparse.ArgumentParser(description="Split-horizon caching DNS forwarder")
    parser.add_argument("--config", default="config.yaml", help="Path to YAML config")
    parser.add_argument(
        "-v",
        "--var",
        action="append",
        default=[],
        metavar="KEY=YAML",
        help="Override a config variable (repeatable)",
    )
    args = parser.parse_args(argv)

    try:
        cfg = parse_config_file(args.config, cli_vars=args.var)
    except (OSError, ValueError) as exc:
        print(str(exc))
        return 1

    # Initialize logging before any other operations
    init_logging(cfg.logging)
    logger = logging.getLogger("splitdns.main")
    logger.info("Loaded config from %s", args.config)

    client = DNSClient(timeout_ms=cfg.timeout_ms)
    try:
        client.init(cfg.forward)
    except UpstreamConfigError as exc:
        logger.error("Fatal configuration error: %s", exc)
        return 1
    logger.info(
        "Configured %d routes, %d static IPv4, %d static IPv6",
        len(client.router),
        len(client.static_ipv4),
        len(client.static_ipv6),
    )
    logger.debug("Routed domains: %s", ", ".join(client.router.domains()) or "-")

    try:
        server = DNSServer(cfg.listen.host, cfg.listen.port, client)
    except OSError as exc:
        logger.error("Could not start UDP listener: %s", exc)
        return 1

    shutdown_event = threading.Event()
    exit_code = 0

    def _request_shutdown(reason: str, code: int) -> None:
        nonlocal exit_code
        if shutdown_event.is_set():
            return
        logger.info("Received %s, shutting down", reason)
        exit_code = code
        shutdown_event.set()

    handlers = {
        "SIGHUP": (lambda _s, _f: _request_shutdown("SIGHUP", 0)),
        "SIGTERM": (lambda _s, _f: _request_shutdown("SIGTERM", 2)),
        "SIGINT": (lambda _s, _f: _request_shutdown("SIGINT", 2)),
    }
    for name, handler in handlers.items():
        signum: Optional[int] = getattr(signal, name, None)
        if signum is None:
            continue
        try:
            signal.signal(signum, handler)
        except (ValueError, OSError):
            # Not in the main thread, or unsupported on this platform.
            logger.warning("Could not install %s handler", name)

    udp_thread = threading.Thread(target=server.serve_forever, name="splitdns-udp", daemon=True)
    logger.info("Starting UDP listener on %s:%d", cfg.listen.host, cfg.listen.port)
    udp_thread.start()

    try:
        while not shutdown_event.wait(1.0):
            if not udp_thread.is_alive():
                logger.error("UDP listener exited unexpectedly")
                exit_code = 1
                break
    except KeyboardInterrupt:
        logger.info("Received interrupt, shutting down")
    finally:
        server.stop()
        udp_thread.join(timeout=5.0)
        logger.info("Cache stats at shutdown: %s", client.cache.stats())

    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())  # pragma: no cover
