from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

from dotenv import load_dotenv

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 3001
DEFAULT_AUTH_DIR = "./auth"


@dataclass(slots=True)
class GatewayConfig:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    auth_dir: str = DEFAULT_AUTH_DIR

    # Fixed delays, no backoff.
    reconnect_delay_s: float = 3.0
    relogin_delay_s: float = 1.0

    log_level: str = "INFO"

    @classmethod
    def from_env(
        cls, environ: Mapping[str, str] | None = None, *, dotenv: bool = True
    ) -> GatewayConfig:
        """
        Build a config from environment variables.

        `.env` is loaded first (without overriding variables that are already set)
        unless `dotenv=False` or an explicit `environ` mapping is given.
        """

        if environ is None:
            if dotenv:
                load_dotenv()
            environ = os.environ

        port_raw = environ.get("PORT") or str(DEFAULT_PORT)
        try:
            port = int(port_raw)
        except ValueError:
            raise ValueError(f"PORT must be an integer, got {port_raw!r}") from None
        if not 0 < port < 65536:
            raise ValueError(f"PORT out of range: {port}")

        return cls(
            host=environ.get("HOST") or DEFAULT_HOST,
            port=port,
            auth_dir=environ.get("AUTH_DIR") or DEFAULT_AUTH_DIR,
            log_level=(environ.get("LOG_LEVEL") or "INFO").upper(),
        )
