from __future__ import annotations

import argparse
import logging
import socket

import uvicorn

from .app import create_app
from .config import GatewayConfig

logger = logging.getLogger("wagateway")

ENDPOINTS = (
    ("GET ", "/api/qr", "Get QR code"),
    ("POST", "/api/send", "Send message"),
    ("GET ", "/api/status", "Check connection"),
    ("POST", "/api/logout", "Logout"),
)


def local_ip() -> str:
    """First non-loopback IPv4 address of this host, or `localhost`."""

    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
        try:
            # No packet is sent; connecting a UDP socket only picks a route.
            s.connect(("10.255.255.255", 1))
            addr = s.getsockname()[0]
        except OSError:
            return "localhost"
    return addr if not addr.startswith("127.") else "localhost"


def _parse_args(config: GatewayConfig) -> argparse.Namespace:
    ap = argparse.ArgumentParser(prog="wagateway", description="WhatsApp HTTP gateway")
    ap.add_argument("--host", default=config.host, help=f"bind address (default: {config.host})")
    ap.add_argument("--port", type=int, default=config.port, help=f"port (default: {config.port})")
    ap.add_argument(
        "--auth", default=config.auth_dir, help=f"auth folder (default: {config.auth_dir})"
    )
    ap.add_argument("--log-level", default=config.log_level, help="logging level")
    return ap.parse_args()


def main() -> None:
    config = GatewayConfig.from_env()
    args = _parse_args(config)
    config.host = args.host
    config.port = args.port
    config.auth_dir = args.auth
    config.log_level = args.log_level.upper()

    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    ip = local_ip()
    logger.info("WhatsApp Gateway API running")
    logger.info("Local:   http://localhost:%d", config.port)
    logger.info("Network: http://%s:%d", ip, config.port)
    for method, path, what in ENDPOINTS:
        logger.info("  %s %-12s - %s", method, path, what)

    uvicorn.run(
        create_app(config),
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()
