"""Loading a service's configuration from files and the Configuration Provider."""

from __future__ import annotations

import copy
import dataclasses
import enum
import logging
import socket
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, MutableMapping, Protocol

import yaml

from edgeboot.configpaths import (
    InvalidRemoteHostsError,
    apply_remote_hosts,
    build_base_key,
    config_file_location,
    merge_maps,
    remove_unused_settings,
)
from edgeboot.environment import (
    Variables,
    get_common_config_file_name,
    get_remote_service_hosts,
    get_startup_info,
    parse_bool,
)
from edgeboot.environment import overwrite_config as env_overwrite_config
from edgeboot.fileload import FileLoadError, SecretProvider, load
from edgeboot.provider import ProviderInfo, ServiceConfig

logger = logging.getLogger(__name__)

ALL_SERVICES_KEY = "all-services"
APP_SERVICES_KEY = "app-services"
DEVICE_SERVICES_KEY = "device-services"
CORE_COMMON_CONFIG_SERVICE_KEY = "core-common-config-bootstrapper"
COMMON_CONFIG_DONE = "IsCommonConfigReady"
WRITABLE_KEY = "Writable"
LOG_LEVEL_KEY = "LogLevel"

_LOG_LEVELS = {
    "TRACE": 5,
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
}


class ConfigError(Exception):
    """Raised when the service configuration cannot be loaded."""


class ServiceType(str, enum.Enum):
    """Kinds of service, each with its own section of common configuration."""

    APP = "app-service"
    DEVICE = "device-service"
    CORE = "core-service"


@dataclass
class ProcessorOptions:
    """Command-line settings that steer how configuration is loaded."""

    config_provider_url: str = ""
    remote_service_hosts: list[str] | None = None
    in_dev_mode: bool = False
    common_config: str = ""
    overwrite_config: bool = False
    config_file_name: str = "configuration.yaml"
    config_directory: str = ""
    profile: str = ""


@dataclass
class StartupTimer:
    """Bounds how long start-up waits for dependencies, in seconds."""

    duration: float = 60
    interval: float = 1
    clock: Callable[[], float] = time.monotonic
    sleep: Callable[[float], None] = time.sleep
    start: float = field(init=False)

    def __post_init__(self) -> None:
        self.start = self.clock()

    @classmethod
    def from_environment(cls) -> StartupTimer:
        """A timer using the durations from the environment or the defaults."""
        info = get_startup_info()
        return cls(duration=info.duration, interval=info.interval)

    def has_not_elapsed(self) -> bool:
        """Whether there is still time left to wait."""
        return self.clock() < self.start + self.duration

    def sleep_for_interval(self) -> None:
        """Wait one retry interval."""
        self.sleep(self.interval)


class ConfigClient(Protocol):
    """The operations used on a Configuration Provider client."""

    def is_alive(self) -> bool: ...

    def has_configuration(self) -> bool: ...

    def has_sub_configuration(self, name: str) -> bool: ...

    def get_configuration(self) -> Any: ...

    def get_configuration_keys(self, prefix: str) -> Iterable[str]: ...

    def get_configuration_value_by_full_path(self, path: str) -> bytes | str: ...

    def put_configuration_map(self, config_map: Mapping[str, Any], overwrite: bool) -> None: ...


ClientFactory = Callable[[ServiceConfig], ConfigClient]


def load_config_yaml(path: str, secret_provider: SecretProvider | None = None) -> dict[str, Any]:
    """Read a YAML configuration file (local or remote) into a dict."""
    logger.info("Loading configuration file from %s", path)
    try:
        contents = load(path, secret_provider)
    except FileLoadError as exc:
        raise ConfigError(f"failed to read configuration file {path}: {exc}") from exc
    try:
        data = yaml.safe_load(contents)
    except yaml.YAMLError as exc:
        raise ConfigError(f"failed to unmarshall configuration file {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(
            f"failed to unmarshall configuration file {path}: top level is not a mapping"
        )
    return data


def _local_ip() -> str:
    # No packets are sent; connecting a UDP socket only picks the outgoing address.
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.connect(("8.8.8.8", 80))
            return sock.getsockname()[0]
    except OSError:
        return "localhost"


def _merge_known(dest: MutableMapping[str, Any], src: Mapping[str, Any]) -> None:
    """Merge only the top-level settings ``dest`` already defines."""
    for key in dest:
        if key not in src:
            continue
        value = src[key]
        if isinstance(dest[key], MutableMapping) and isinstance(value, Mapping):
            merge_maps(dest[key], value)
        else:
            dest[key] = copy.deepcopy(value)


def _replace_contents(target: MutableMapping[str, Any], raw: Any) -> None:
    if not isinstance(raw, Mapping):
        raise ConfigError("could not update service's configuration from raw")
    target.clear()
    target.update(copy.deepcopy(dict(raw)))


class Processor:
    """Loads configuration from the Configuration Provider or local files."""

    def __init__(
        self,
        options: ProcessorOptions | None = None,
        env_vars: Variables | None = None,
        secret_provider: SecretProvider | None = None,
        client_factory: ClientFactory | None = None,
        timer: StartupTimer | None = None,
    ) -> None:
        self.options = options or ProcessorOptions()
        self.env_vars = env_vars if env_vars is not None else Variables()
        self.secret_provider = secret_provider
        self.client_factory = client_factory
        self.timer = timer if timer is not None else StartupTimer.from_environment()
        self.stop_event = threading.Event()
        self.provider_info: ProviderInfo | None = None
        self.provider_has_config = False
        self.common_client: ConfigClient | None = None
        self.app_client: ConfigClient | None = None
        self.device_client: ConfigClient | None = None
        self.private_client: ConfigClient | None = None
        self.in_dev_mode = False
        self.in_remote_mode = False
        self._overwrite: bool | None = None

    def overwrite_config(self) -> bool:
        """Whether local configuration overwrites the provider's; decided once."""
        if self._overwrite is None:
            overwrite = self.options.overwrite_config
            env_value, was_set = env_overwrite_config()
            if was_set:
                overwrite = env_value
            self._overwrite = overwrite
        return self._overwrite

    def _create_client(
        self, service_key: str, config_stem: str, provider_config: ServiceConfig
    ) -> ConfigClient:
        if self.client_factory is None:
            raise ConfigError("no Configuration Provider client factory available")
        if not config_stem.endswith("/"):
            config_stem += "/"
        config = dataclasses.replace(provider_config, base_path=f"{config_stem}{service_key}")
        logger.info(
            "Using Configuration provider (%s) from: %s with base path of %s",
            config.type,
            config.get_url(),
            config.base_path,
        )
        try:
            return self.client_factory(config)
        except Exception as exc:
            raise ConfigError(f"failed to create provider for {service_key}: {exc}") from exc

    def process(
        self,
        service_key: str,
        service_type: ServiceType | str,
        config_stem: str,
        service_config: MutableMapping[str, Any],
    ) -> None:
        """Load configuration into ``service_config`` in place."""
        remote_hosts = get_remote_service_hosts(self.options.remote_service_hosts)
        try:
            provider_info = ProviderInfo(self.env_vars, self.options.config_provider_url)
        except ValueError as exc:
            raise ConfigError(str(exc)) from exc
        self.provider_info = provider_info
        use_provider = provider_info.use_provider()
        self.in_dev_mode = self.options.in_dev_mode
        self.in_remote_mode = remote_hosts is not None

        private_client: ConfigClient | None = None
        if use_provider:
            if remote_hosts is not None:
                if len(remote_hosts) != 3:
                    raise InvalidRemoteHostsError()
                logger.info("Setting config Provider host to %s", remote_hosts[1])
                provider_info.service_config.host = remote_hosts[1]

            self._load_common_config(config_stem, provider_info, service_config, service_type)
            logger.info("Common configuration loaded from the Configuration Provider. No overrides applied")

            private_client = self._create_client(
                service_key, config_stem, provider_info.service_config
            )
            self.private_client = private_client
            try:
                self.provider_has_config = bool(private_client.has_configuration())
            except Exception as exc:
                raise ConfigError(
                    "failed check for Configuration Provider has private configiuration: "
                    f"{exc}"
                ) from exc

            if self.provider_has_config and not self.overwrite_config():
                private_config: dict[str, Any] = copy.deepcopy(dict(service_config))
                self._load_from_provider(private_config, private_client)
                keys = private_client.get_configuration_keys("")
                private_map = remove_unused_settings(
                    private_config, build_base_key(config_stem, service_key), keys
                )
                merge_maps(service_config, private_map)
                logger.info(
                    "Private configuration loaded from the Configuration Provider. No overrides applied"
                )
        else:
            common_location = get_common_config_file_name(self.options.common_config)
            if common_location:
                self._load_common_config_from_file(common_location, service_config, service_type)
                count = self.env_vars.override_config_map(service_config)
                logger.info("Common configuration loaded from file with %d overrides applied", count)

        if not use_provider or not self.provider_has_config or self.overwrite_config():
            path = config_file_location(
                self.options.config_file_name,
                self.options.config_directory,
                self.options.profile,
            )
            config_map = load_config_yaml(path, self.secret_provider)
            count = self.env_vars.override_config_map(config_map)
            logger.info("Private configuration loaded from file with %d overrides applied", count)
            merge_maps(service_config, config_map)

            if use_provider and private_client is not None:
                try:
                    private_client.put_configuration_map(config_map, self.overwrite_config())
                except Exception as exc:
                    raise ConfigError(
                        f"could not push private configuration into Configuration Provider: {exc}"
                    ) from exc
                logger.info(
                    "Private configuration has been pushed to into Configuration Provider "
                    "with overrides applied"
                )

        error = self._set_log_level(service_config)

        if self.options.in_dev_mode:
            self._apply_dev_mode(service_config)

        if remote_hosts is not None:
            apply_remote_hosts(remote_hosts, service_config)
            error = None

        if error is not None:
            raise error

    @staticmethod
    def _set_log_level(service_config: Mapping[str, Any]) -> ConfigError | None:
        writable = service_config.get(WRITABLE_KEY) or {}
        level = writable.get(LOG_LEVEL_KEY, "") if isinstance(writable, Mapping) else ""
        if level not in _LOG_LEVELS:
            return ConfigError(f"invalid log level `{level}`")
        logging.getLogger("edgeboot").setLevel(_LOG_LEVELS[level])
        return None

    @staticmethod
    def _apply_dev_mode(service_config: MutableMapping[str, Any]) -> None:
        host = "localhost"
        service = service_config.get("Service")
        if service is not None:
            service["Host"] = _local_ip()
            service["ServerBindAddr"] = "0.0.0.0"
        for section in ("MessageBus", "Registry", "Database"):
            settings = service_config.get(section)
            if settings is not None:
                settings["Host"] = host
        for client in (service_config.get("Clients") or {}).values():
            client["Host"] = host

    def _load_common_config(
        self,
        config_stem: str,
        provider_info: ProviderInfo,
        service_config: MutableMapping[str, Any],
        service_type: ServiceType | str,
    ) -> None:
        provider_config = provider_info.service_config
        self.common_client = self._create_client(
            build_base_key(CORE_COMMON_CONFIG_SERVICE_KEY, ALL_SERVICES_KEY),
            config_stem,
            provider_config,
        )
        ready_path = f"{config_stem}/{CORE_COMMON_CONFIG_SERVICE_KEY}/{COMMON_CONFIG_DONE}"
        self._wait_for_common_config(self.common_client, ready_path)
        try:
            self._load_from_provider(service_config, self.common_client)
        except Exception as exc:
            raise ConfigError(
                f"failed to load the common configuration for {ALL_SERVICES_KEY}: {exc}"
            ) from exc

        if service_type == ServiceType.APP:
            section_key = APP_SERVICES_KEY
        elif service_type == ServiceType.DEVICE:
            section_key = DEVICE_SERVICES_KEY
        else:
            return

        logger.info("loading the common configuration for service type %s", service_type)
        type_section = build_base_key(CORE_COMMON_CONFIG_SERVICE_KEY, section_key)
        type_config: dict[str, Any] = copy.deepcopy(dict(service_config))
        client = self._create_client(type_section, config_stem, provider_config)
        if section_key == APP_SERVICES_KEY:
            self.app_client = client
        else:
            self.device_client = client
        try:
            self._load_from_provider(type_config, client)
        except Exception as exc:
            raise ConfigError(
                f"failed to load the common configuration for {section_key}: {exc}"
            ) from exc
        try:
            keys = list(client.get_configuration_keys(""))
        except Exception as exc:
            raise ConfigError(
                f"failed to load the common configuration keys for {section_key}: {exc}"
            ) from exc

        type_map = remove_unused_settings(
            type_config, build_base_key(config_stem, type_section), keys
        )
        merge_maps(service_config, type_map)

    def _load_common_config_from_file(
        self,
        config_file: str,
        service_config: MutableMapping[str, Any],
        service_type: ServiceType | str,
    ) -> None:
        common = load_config_yaml(config_file, self.secret_provider)
        all_services = common.get(ALL_SERVICES_KEY)
        if not isinstance(all_services, dict):
            raise ConfigError(
                f"could not find {ALL_SERVICES_KEY} section in common config {config_file}"
            )
        section_key = {
            ServiceType.APP: APP_SERVICES_KEY,
            ServiceType.DEVICE: DEVICE_SERVICES_KEY,
        }.get(_as_service_type(service_type))
        if section_key is not None:
            logger.info("loading the common configuration for service type %s", service_type)
            type_config = common.get(section_key)
            if not isinstance(type_config, dict):
                raise ConfigError(
                    f"could not find {section_key} section in common config {config_file}"
                )
            merge_maps(all_services, type_config)
        merge_maps(service_config, all_services)

    def _wait_for_common_config(self, client: ConfigClient, ready_path: str) -> None:
        alive = False
        while self.timer.has_not_elapsed():
            if client.is_alive():
                alive = True
                break
            logger.warning("Waiting for configuration provider to be available")
            if self.stop_event.is_set():
                raise ConfigError("aborted waiting Configuration Provider to be available")
            self.timer.sleep_for_interval()
        if not alive:
            raise ConfigError("configuration provider is not available")

        ready = False
        while self.timer.has_not_elapsed():
            try:
                value = client.get_configuration_value_by_full_path(ready_path)
            except Exception:
                logger.warning("waiting for Common Configuration to be available from config provider")
                self.timer.sleep_for_interval()
                continue
            text = value.decode() if isinstance(value, bytes) else str(value)
            try:
                ready = parse_bool(text)
            except ValueError as exc:
                logger.warning("did not get boolean from config provider for %s: %s", ready_path, exc)
                ready = False
            if ready:
                break
            logger.warning("waiting for Common Configuration to be available from config provider")
            if self.stop_event.is_set():
                raise ConfigError("aborted waiting for Common Configuration to be available")
            self.timer.sleep_for_interval()
        if not ready:
            raise ConfigError(
                "common config is not loaded - check to make sure core-common-config-bootstrapper ran"
            )

    @staticmethod
    def _load_from_provider(target: MutableMapping[str, Any], client: ConfigClient) -> None:
        _replace_contents(target, client.get_configuration())

    def load_custom_config_section(
        self, custom_config: MutableMapping[str, Any], section_name: str
    ) -> None:
        """Load a custom configuration section from the provider or the local file.

        Only settings ``custom_config`` already defines are taken. When the
        provider lacks the section (or overwriting is asked for), the file's
        values, with environment overrides, are pushed to the provider.
        """
        client = self.private_client
        if client is None:
            logger.info(
                "Skipping use of Configuration Provider for custom configuration: Provider not available"
            )
            config_map = load_config_yaml(self._config_file_path(), self.secret_provider)
            _merge_known(custom_config, config_map)
            return

        logger.info("Checking if custom configuration ('%s') exists in Configuration Provider", section_name)
        try:
            exists = bool(client.has_sub_configuration(section_name))
        except Exception as exc:
            raise ConfigError(
                f"unable to determine if custom configuration exists in Configuration Provider: {exc}"
            ) from exc

        if exists and not self.overwrite_config():
            try:
                raw = client.get_configuration()
            except Exception as exc:
                raise ConfigError(
                    f"unable to get custom configuration from Configuration Provider: {exc}"
                ) from exc
            if not isinstance(raw, Mapping):
                raise ConfigError("unable to merge custom configuration from Configuration Provider")
            _merge_known(custom_config, raw)
            logger.info("Loaded custom configuration from Configuration Provider, no overrides applied")
            return

        config_map = load_config_yaml(self._config_file_path(), self.secret_provider)
        _merge_known(custom_config, config_map)
        try:
            count = self.env_vars.override_config_map(custom_config)
        except ValueError as exc:
            raise ConfigError(f"unable to apply environment overrides: {exc}") from exc
        logger.info("Loaded custom configuration from File (%d envVars overrides applied)", count)

        try:
            client.put_configuration_map(copy.deepcopy(dict(custom_config)), True)
        except Exception as exc:
            raise ConfigError(
                f"error pushing custom config to Configuration Provider: {exc}"
            ) from exc
        note = "(overwritten)" if exists and self.overwrite_config() else ""
        logger.info("Custom Config loaded from file and pushed to Configuration Provider %s", note)

    def _config_file_path(self) -> str:
        return config_file_location(
            self.options.config_file_name,
            self.options.config_directory,
            self.options.profile,
        )


def _as_service_type(value: ServiceType | str) -> ServiceType | None:
    try:
        return ServiceType(value)
    except ValueError:
        return None