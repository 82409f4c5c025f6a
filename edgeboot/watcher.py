"""Applying Writable configuration updates received from the Configuration Provider."""

from __future__ import annotations

import copy
import logging
from datetime import timedelta
from typing import Any, Callable, Iterable, Mapping, MutableMapping, Protocol

from edgeboot.configpaths import (
    INSECURE_SECRETS_KEY,
    WRITABLE_KEY,
    build_base_key,
    find_changed_key,
    merge_maps,
    remove_unused_settings,
    secret_names_changed,
)
from edgeboot.environment import parse_duration

logger = logging.getLogger(__name__)

LOG_LEVEL_KEY = "LogLevel"
TELEMETRY_KEY = "Telemetry"
INTERVAL_KEY = "Interval"

_LOG_LEVELS = {
    "TRACE": 5,
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
}


class _KeyedClient(Protocol):
    def get_configuration_keys(self, prefix: str) -> Iterable[str]: ...


class _SecretUpdates(Protocol):
    def secret_updated_at_secret_name(self, secret_name: str) -> None: ...


class _MetricsManager(Protocol):
    def reset_interval(self, interval: timedelta) -> None: ...


class WritableWatcher:
    """Merges Writable updates into a service configuration and reacts to them.

    A change of log level adjusts logging, a change of insecure secrets notifies
    the secret provider, and a change of the telemetry interval resets the
    metrics manager. Any other change is signalled through ``on_updated``.
    """

    def __init__(
        self,
        service_config: MutableMapping[str, Any],
        secret_provider: _SecretUpdates | None = None,
        metrics_manager: _MetricsManager | None = None,
        on_updated: Callable[[], None] | None = None,
    ) -> None:
        self.service_config = service_config
        self.secret_provider = secret_provider
        self.metrics_manager = metrics_manager
        self.on_updated = on_updated
        self._private_first_update = True

    def _writable(self) -> MutableMapping[str, Any]:
        writable = self.service_config.get(WRITABLE_KEY)
        if not isinstance(writable, MutableMapping):
            writable = {}
            self.service_config[WRITABLE_KEY] = writable
        return writable

    def _log_level(self) -> str:
        return self._writable().get(LOG_LEVEL_KEY, "")

    def _telemetry_interval(self) -> str:
        telemetry = self._writable().get(TELEMETRY_KEY) or {}
        return telemetry.get(INTERVAL_KEY, "") if isinstance(telemetry, Mapping) else ""

    def _insecure_secrets(self) -> Mapping[str, Any] | None:
        return self._writable().get(INSECURE_SECRETS_KEY)

    def apply_writable_updates(self, raw: Any) -> None:
        """Merge ``raw`` into the Writable section and act on what changed."""
        previous_level = self._log_level()
        previous_interval = self._telemetry_interval()
        previous_secrets = copy.deepcopy(self._insecure_secrets() or {})

        if isinstance(raw, Mapping):
            merge_maps(self._writable(), raw)
        else:
            logger.error("failed to apply Writable change to service configuration: %r", raw)

        current_level = self._log_level()
        current_interval = self._telemetry_interval()
        current_secrets = self._insecure_secrets()

        logger.info("Writable configuration has been updated from the Configuration Provider")

        # Updates arrive one setting at a time, so only one kind of change is handled.
        if current_level != previous_level:
            self._set_log_level(current_level)
            logger.info("Logging level changed to %s", current_level)
        elif current_secrets is not None and current_secrets != previous_secrets:
            logger.info("Insecure Secrets have been updated")
            if self.secret_provider is not None:
                for name in secret_names_changed(previous_secrets, current_secrets):
                    self.secret_provider.secret_updated_at_secret_name(name)
        elif current_interval != previous_interval:
            self._reset_telemetry_interval(current_interval)
        elif self.on_updated is not None:
            self.on_updated()

    @staticmethod
    def _set_log_level(level: str) -> None:
        if level not in _LOG_LEVELS:
            logger.error("invalid log level `%s`", level)
            return
        logging.getLogger("edgeboot").setLevel(_LOG_LEVELS[level])

    def _reset_telemetry_interval(self, value: str) -> None:
        logger.info("Telemetry interval has been updated. Processing new value...")
        try:
            interval = parse_duration(value)
        except ValueError as exc:
            logger.error(
                "update telemetry interval value is invalid time duration, using previous value: %s",
                exc,
            )
            return
        if interval == timedelta(0):
            logger.info(
                "0 specified for metrics reporting interval. "
                "Setting to max duration to effectively disable reporting."
            )
            interval = timedelta.max
        if self.metrics_manager is None:
            logger.error("metrics manager not available while updating telemetry interval")
            return
        self.metrics_manager.reset_interval(interval)

    def handle_private_update(
        self, raw: Mapping[str, Any], used_keys: Iterable[str], base_key: str
    ) -> bool:
        """Apply a private Writable update; the very first update is ignored.

        Settings not present among ``used_keys`` are dropped first. Returns
        whether the update was applied.
        """
        settings = remove_unused_settings(raw, build_base_key(base_key, WRITABLE_KEY), used_keys)
        if self._private_first_update:
            # The provider sends the current values as soon as watching starts.
            self._private_first_update = False
            return False
        self.apply_writable_updates(settings)
        return True

    def process_common_change(
        self,
        previous: Any,
        raw: Any,
        private_client: _KeyedClient,
        config_client: _KeyedClient,
        common_client: _KeyedClient | None,
        other_client: _KeyedClient | None,
    ) -> bool:
        """Apply a common Writable change unless a more specific setting overrides it.

        Returns whether the change was applied.
        """
        changed_key = find_changed_key(previous, raw)
        if changed_key is not None:
            if config_client is common_client and other_client is not None:
                if self.is_key_in_config(other_client, changed_key):
                    logger.warning(
                        "ignoring changed writable key %s overwritten in App or Device common writable",
                        changed_key,
                    )
                    return False
            if self.is_key_in_config(private_client, changed_key):
                logger.warning(
                    "ignoring changed writable key %s overwritten in private writable", changed_key
                )
                return False
        self.apply_writable_updates(raw)
        return True

    def is_key_in_config(self, config_client: _KeyedClient, changed_key: str) -> bool:
        """Whether ``config_client`` holds the Writable setting ``changed_key``.

        An error counts as present, so an override is never clobbered.
        """
        try:
            keys = list(config_client.get_configuration_keys(WRITABLE_KEY))
        except Exception as exc:
            logger.error("could not get writable keys from configuration: %s", exc)
            return True
        target = build_base_key(WRITABLE_KEY, changed_key)
        return any(target in key for key in keys)