"""Configuration Provider connection settings."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from urllib.parse import urlsplit

from edgeboot.environment import Variables


@dataclass
class ServiceConfig:
    """Where and how to reach the Configuration Provider."""

    host: str = ""
    port: int = 0
    protocol: str = ""
    type: str = ""
    base_path: str = ""
    auth_injector: Any = None

    def populate_from_url(self, url: str) -> None:
        """Fill in type, protocol, host and port from ``<type>.<protocol>://host:port``."""
        parts = urlsplit(url)
        scheme = parts.scheme.split(".")
        if len(scheme) != 2 or not all(scheme):
            raise ValueError(
                f"configuration provider URL ({url}) not valid: "
                "scheme must be in the form <type>.<protocol>"
            )
        try:
            port = parts.port
        except ValueError as exc:
            raise ValueError(f"configuration provider URL ({url}) has an invalid port") from exc
        if not parts.hostname or port is None:
            raise ValueError(f"configuration provider URL ({url}) must contain host and port")
        self.type, self.protocol = scheme
        self.host = parts.hostname
        self.port = port

    def get_url(self) -> str:
        """The provider's URL without the provider type."""
        return f"{self.protocol}://{self.host}:{self.port}"


class ProviderInfo:
    """Configuration Provider settings from the command line and environment."""

    def __init__(self, env_vars: Variables, provider_url: str) -> None:
        config = ServiceConfig()
        if provider_url:
            config.populate_from_url(provider_url)
        self.service_config: ServiceConfig = env_vars.override_config_provider_info(config)

    def use_provider(self) -> bool:
        """Whether a Configuration Provider is to be used."""
        return self.service_config.host != ""