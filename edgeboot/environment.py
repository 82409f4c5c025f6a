"""Environment-variable overrides for service bootstrap settings."""

from __future__ import annotations

import copy
import logging
import os
import re
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, MutableMapping

logger = logging.getLogger(__name__)

BOOT_TIMEOUT_SECONDS_DEFAULT = 60
BOOT_RETRY_SECONDS_DEFAULT = 1
DEFAULT_CONFIG_DIR = "./res"
DEFAULT_FILE_URI_TIMEOUT = timedelta(seconds=15)

ENV_KEY_CONFIG_URL = "EDGEX_CONFIG_PROVIDER"
ENV_KEY_COMMON_CONFIG = "EDGEX_COMMON_CONFIG"
ENV_KEY_USE_REGISTRY = "EDGEX_USE_REGISTRY"
ENV_KEY_STARTUP_DURATION = "EDGEX_STARTUP_DURATION"
ENV_KEY_STARTUP_INTERVAL = "EDGEX_STARTUP_INTERVAL"
ENV_KEY_CONFIG_DIR = "EDGEX_CONFIG_DIR"
ENV_KEY_PROFILE = "EDGEX_PROFILE"
ENV_KEY_CONFIG_FILE = "EDGEX_CONFIG_FILE"
ENV_KEY_FILE_URI_TIMEOUT = "EDGEX_FILE_URI_TIMEOUT"
ENV_KEY_REMOTE_SERVICE_HOSTS = "EDGEX_REMOTE_SERVICE_HOSTS"
ENV_KEY_OVERWRITE_CONFIG = "EDGEX_OVERWRITE_CONFIG"

NO_CONFIG_PROVIDER_VALUE = "none"

CONFIG_PATH_SEPARATOR = "/"
CONFIG_NAME_SEPARATOR = "-"
ENV_NAME_SEPARATOR = "_"

_INSECURE_SECRETS_RE = re.compile(r"^Writable\.InsecureSecrets\.[^.]+\.Secrets\..+$")
_REDACTED = "<redacted>"

_TRUE_WORDS = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE_WORDS = frozenset({"0", "f", "F", "FALSE", "false", "False"})

_DURATION_UNITS_NS = {
    "ns": 1,
    "us": 1_000,
    "µs": 1_000,
    "μs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "h": 3600 * 1_000_000_000,
}
_DURATION_PART = r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)"
_DURATION_RE = re.compile(rf"(?:{_DURATION_PART})+")
_DURATION_PART_RE = re.compile(_DURATION_PART)
_INTEGER_RE = re.compile(r"[+-]?\d+")


@dataclass
class StartupInfo:
    """Startup timer settings applied when the service boots."""

    duration: int = BOOT_TIMEOUT_SECONDS_DEFAULT
    interval: int = BOOT_RETRY_SECONDS_DEFAULT


def _log_override(name: str, key: str, value: str) -> None:
    shown = _REDACTED if _INSECURE_SECRETS_RE.match(name) else value
    logger.info("Variables override of '%s' by environment variable: %s=%s", name, key, shown)


def parse_bool(text: str) -> bool:
    """Parse a boolean the way the configuration files spell them."""
    if text in _TRUE_WORDS:
        return True
    if text in _FALSE_WORDS:
        return False
    raise ValueError(f"invalid boolean value: {text!r}")


def parse_duration(text: str) -> timedelta:
    """Parse a duration such as ``"1h30m"``, ``"15s"`` or ``"-1.5ms"``."""
    body = text
    negative = False
    if body[:1] in ("+", "-"):
        negative = body[0] == "-"
        body = body[1:]
    if body == "0":
        return timedelta(0)
    if not body or not _DURATION_RE.fullmatch(body):
        raise ValueError(f"invalid duration: {text!r}")
    total_ns = Decimal(0)
    for number, unit in _DURATION_PART_RE.findall(body):
        try:
            total_ns += Decimal(number) * _DURATION_UNITS_NS[unit]
        except InvalidOperation as exc:
            raise ValueError(f"invalid duration: {text!r}") from exc
    if negative:
        total_ns = -total_ns
    try:
        return timedelta(microseconds=float(total_ns / 1000))
    except OverflowError as exc:
        raise ValueError(f"invalid duration: {text!r}") from exc


def _parse_comma_separated(value: str) -> list[str]:
    return [entry.strip() for entry in value.strip().split(",")]


def convert_to_type(old_value: Any, value: str) -> Any:
    """Convert the string ``value`` to the type of ``old_value``."""
    if isinstance(old_value, (list, tuple)):
        return _parse_comma_separated(value)
    if isinstance(old_value, str):
        return value
    if isinstance(old_value, bool):
        return parse_bool(value)
    if isinstance(old_value, int):
        if not _INTEGER_RE.fullmatch(value):
            raise ValueError(f"invalid integer value: {value!r}")
        return int(value)
    if isinstance(old_value, float):
        return float(value)
    raise ValueError(
        f"configuration type of '{type(old_value).__name__}' is not supported "
        "for environment variable override"
    )


def _get_config_map_value(path: str, config_map: Mapping[str, Any]) -> Any:
    if path in config_map:
        return config_map[path]
    current: Mapping[str, Any] = config_map
    for key in path.split(CONFIG_PATH_SEPARATOR):
        item = current.get(key)
        if item is None:
            return None
        if not isinstance(item, Mapping):
            return item
        current = item
    return None


def _set_config_map_value(path: str, value: Any, config_map: MutableMapping[str, Any]) -> None:
    if path in config_map:
        config_map[path] = value
        return
    current = config_map
    for key in path.split(CONFIG_PATH_SEPARATOR):
        item = current.get(key)
        if not isinstance(item, MutableMapping):
            current[key] = value
            return
        current = item


def _build_paths(key_map: Mapping[str, Any]) -> list[str]:
    paths: list[str] = []
    for key, item in key_map.items():
        if isinstance(item, Mapping):
            paths.extend(f"{key}{CONFIG_PATH_SEPARATOR}{sub}" for sub in _build_paths(item))
        else:
            paths.append(key)
    return paths


def _override_name_for(path: str) -> str:
    name = path.replace(CONFIG_PATH_SEPARATOR, ENV_NAME_SEPARATOR)
    name = name.replace(CONFIG_NAME_SEPARATOR, ENV_NAME_SEPARATOR)
    return name.upper()


class Variables:
    """A snapshot of the process environment used to override configuration."""

    def __init__(self, environ: Mapping[str, str] | None = None) -> None:
        source = os.environ if environ is None else environ
        self.variables: dict[str, str] = dict(source)

    def use_registry(self) -> tuple[bool, bool]:
        """Return (use registry, whether the environment set it)."""
        value = self.variables.get(ENV_KEY_USE_REGISTRY, "")
        if not value:
            return False, False
        _log_override("-r/--registry", ENV_KEY_USE_REGISTRY, value)
        return value == "true", True

    def override_config_map(self, config_map: MutableMapping[str, Any]) -> int:
        """Apply matching environment variables to ``config_map`` in place.

        Returns the number of values overridden.
        """
        override_names = {_override_name_for(path): path for path in _build_paths(config_map)}
        count = 0
        for env_var, env_value in self.variables.items():
            path = override_names.get(env_var)
            if path is None:
                continue
            old_value = _get_config_map_value(path, config_map)
            try:
                new_value = convert_to_type(old_value, env_value)
            except ValueError as exc:
                raise ValueError(
                    f"environment value override failed for {env_var}={env_value}: {exc}"
                ) from exc
            _set_config_map_value(path, new_value, config_map)
            count += 1
            _log_override(path, env_var, env_value)
        return count

    def override_config_provider_info(self, provider_config: Any) -> Any:
        """Return the provider settings with the environment URL applied, if set."""
        url = self.variables.get(ENV_KEY_CONFIG_URL, "")
        if not url:
            return provider_config
        _log_override("Configuration Provider Information", ENV_KEY_CONFIG_URL, url)
        if url == NO_CONFIG_PROVIDER_VALUE:
            return type(provider_config)()
        updated = copy.copy(provider_config)
        updated.populate_from_url(url)
        return updated


def _positive_int_from_env(key: str, label: str, default: int) -> int:
    value = os.environ.get(key, "")
    if not value:
        return default
    _log_override(label, key, value)
    if _INTEGER_RE.fullmatch(value) and int(value) > 0:
        return int(value)
    return default


def get_startup_info() -> StartupInfo:
    """Startup timer settings from the environment, or the defaults."""
    return StartupInfo(
        duration=_positive_int_from_env(
            ENV_KEY_STARTUP_DURATION, "Startup Duration", BOOT_TIMEOUT_SECONDS_DEFAULT
        ),
        interval=_positive_int_from_env(
            ENV_KEY_STARTUP_INTERVAL, "Startup Interval", BOOT_RETRY_SECONDS_DEFAULT
        ),
    )


def get_config_dir(config_dir: str) -> str:
    """Configuration directory from the environment, argument or default."""
    env_value = os.environ.get(ENV_KEY_CONFIG_DIR, "")
    if env_value:
        config_dir = env_value
        _log_override("-cd/-configDir", ENV_KEY_CONFIG_DIR, env_value)
    return config_dir or DEFAULT_CONFIG_DIR


def get_profile_dir(profile_dir: str) -> str:
    """Profile sub-directory (with trailing slash) or an empty string."""
    env_value = os.environ.get(ENV_KEY_PROFILE, "")
    if env_value:
        profile_dir = env_value
        _log_override("-p/-profile", ENV_KEY_PROFILE, env_value)
    return f"{profile_dir}/" if profile_dir else ""


def get_config_file_name(config_file_name: str) -> str:
    """Configuration file name from the environment or the argument."""
    env_value = os.environ.get(ENV_KEY_CONFIG_FILE, "")
    if env_value:
        _log_override("-cf/--configFile", ENV_KEY_CONFIG_FILE, env_value)
        return env_value
    return config_file_name


def get_common_config_file_name(common_config_file_name: str) -> str:
    """Common configuration file name from the environment or the argument."""
    env_value = os.environ.get(ENV_KEY_COMMON_CONFIG, "")
    if env_value:
        _log_override("-cc/--commonConfig", ENV_KEY_COMMON_CONFIG, env_value)
        return env_value
    return common_config_file_name


def get_uri_request_timeout() -> timedelta:
    """Timeout for fetching remote configuration files."""
    env_value = os.environ.get(ENV_KEY_FILE_URI_TIMEOUT, "")
    if not env_value:
        return DEFAULT_FILE_URI_TIMEOUT
    try:
        timeout = parse_duration(env_value)
    except ValueError as exc:
        logger.warning(
            "Could not parse value for %s = %s: %s. Using default of %s",
            ENV_KEY_FILE_URI_TIMEOUT,
            env_value,
            exc,
            DEFAULT_FILE_URI_TIMEOUT,
        )
        return DEFAULT_FILE_URI_TIMEOUT
    logger.info(
        "Variables override of 'URI Request Timeout' by environment variable: %s=%s",
        ENV_KEY_FILE_URI_TIMEOUT,
        env_value,
    )
    return timeout


def get_remote_service_hosts(remote_hosts: list[str] | None) -> list[str] | None:
    """Remote service host names from the environment, or ``remote_hosts``."""
    env_value = os.environ.get(ENV_KEY_REMOTE_SERVICE_HOSTS, "")
    if not env_value:
        return remote_hosts
    _log_override("-rsh/--remoteServiceHosts", ENV_KEY_REMOTE_SERVICE_HOSTS, env_value)
    return env_value.split(",")


def overwrite_config() -> tuple[bool, bool]:
    """Return (overwrite the provider's config, whether the environment set it)."""
    env_value = os.environ.get(ENV_KEY_OVERWRITE_CONFIG, "")
    if not env_value:
        return False, False
    _log_override("-o/--overwrite", ENV_KEY_OVERWRITE_CONFIG, env_value)
    try:
        return parse_bool(env_value), True
    except ValueError:
        return False, True