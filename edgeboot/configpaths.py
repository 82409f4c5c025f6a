"""Configuration key paths, change detection and host rewriting helpers."""

from __future__ import annotations

import copy
import logging
import os
from typing import Any, Iterable, Mapping, MutableMapping
from urllib.parse import urlsplit

from edgeboot.environment import get_config_dir, get_config_file_name, get_profile_dir

logger = logging.getLogger(__name__)

WRITABLE_KEY = "Writable"
INSECURE_SECRETS_KEY = "InsecureSecrets"
SECRET_NAME_KEY = "SecretName"
SECRET_DATA_KEY = "SecretData"

KEY_SEPARATOR = "/"

INVALID_REMOTE_HOSTS_MESSAGE = (
    "-rsh/--remoteServiceHosts must contain 3 and only 3 comma seperated host names"
)

_HOST_SECTIONS = ("Config", "MessageBus", "Registry", "Database")


class InvalidRemoteHostsError(ValueError):
    """The remote service hosts list does not hold exactly three names."""

    def __init__(self, message: str = INVALID_REMOTE_HOSTS_MESSAGE) -> None:
        super().__init__(message)


def build_base_key(*args: str) -> str:
    """Join key segments with the configuration path separator."""
    return KEY_SEPARATOR.join(args)


def _new_key(previous_key: str, current_key: str) -> str:
    return build_base_key(previous_key, current_key) if previous_key else current_key


def walk_map_for_change(
    previous: Mapping[str, Any], updated: Mapping[str, Any], changed_key: str = ""
) -> str:
    """Return the path of the first setting in ``updated`` that differs from ``previous``.

    Returns an empty string when nothing changed.
    """
    for key, updated_value in updated.items():
        if key not in previous:
            return _new_key(changed_key, key)
        previous_value = previous[key]
        if not isinstance(updated_value, Mapping):
            if updated_value != previous_value:
                return _new_key(changed_key, key)
            continue
        if not isinstance(previous_value, Mapping):
            sub_key = _new_key(changed_key, key)
            for first in updated_value:
                return _new_key(sub_key, first)
            return ""
        found = walk_map_for_change(previous_value, updated_value, _new_key(changed_key, key))
        if found:
            return found
    return ""


def find_changed_key(previous: Any, updated: Any) -> str | None:
    """Path of the setting that was changed, added or removed, or None if none is found."""
    previous_map = {} if previous is None else previous
    updated_map = {} if updated is None else updated
    if not isinstance(previous_map, Mapping):
        logger.error("could not convert previous value to map: %r", previous)
        return None
    if not isinstance(updated_map, Mapping):
        logger.error("could not convert updated value to map: %r", updated)
        return None
    changed = walk_map_for_change(previous_map, updated_map)
    if not changed:
        # look the other way around to see if an item was removed
        changed = walk_map_for_change(updated_map, previous_map)
        if not changed:
            logger.error("could not find updated writable key or an error occurred")
            return None
    return changed


def _secret_fields(entry: Mapping[str, Any] | None) -> tuple[str, Any]:
    entry = entry or {}
    return entry.get(SECRET_NAME_KEY, ""), entry.get(SECRET_DATA_KEY)


def secret_names_changed(
    previous: Mapping[str, Mapping[str, Any]], current: Mapping[str, Mapping[str, Any]]
) -> list[str]:
    """Secret names whose insecure secrets were changed, renamed, removed or added."""
    names: list[str] = []
    for key, previous_entry in previous.items():
        previous_name, previous_data = _secret_fields(previous_entry)
        current_name, current_data = _secret_fields(current.get(key))
        if current_data is None:
            names.append(previous_name)
            continue
        if (previous_name, previous_data) != (current_name, current_data):
            names.append(current_name)
            if previous_name != current_name:
                names.append(previous_name)
    for key, current_entry in current.items():
        if _secret_fields(previous.get(key))[1] is None:
            names.append(_secret_fields(current_entry)[0])
    return names


def insecure_secret_name_full_path(secret_name: str) -> str:
    """Configuration path of an insecure secret's SecretName field."""
    return build_base_key(WRITABLE_KEY, INSECURE_SECRETS_KEY, secret_name, SECRET_NAME_KEY)


def insecure_secret_data_full_path(secret_name: str, key: str) -> str:
    """Configuration path of one entry of an insecure secret's SecretData."""
    return build_base_key(WRITABLE_KEY, INSECURE_SECRETS_KEY, secret_name, SECRET_DATA_KEY, key)


def apply_remote_hosts(
    remote_hosts: list[str] | None, bootstrap: MutableMapping[str, Any]
) -> None:
    """Point the bootstrap sections at the remote hosts.

    ``remote_hosts`` is (service host, dependency host, bind address).
    """
    if remote_hosts is None or len(remote_hosts) != 3:
        raise InvalidRemoteHostsError()
    service_host, dependency_host, bind_address = remote_hosts

    service = bootstrap.get("Service")
    if service is None:
        raise ValueError("bootstrap configuration has no Service section")
    service["Host"] = service_host
    service["ServerBindAddr"] = bind_address

    for section in _HOST_SECTIONS:
        settings = bootstrap.get(section)
        if settings is not None:
            settings["Host"] = dependency_host

    for client in (bootstrap.get("Clients") or {}).values():
        client["Host"] = dependency_host


def config_file_location(config_file_name: str, config_dir: str = "", profile: str = "") -> str:
    """Location of the service's configuration file: a URL or a local path."""
    file_name = get_config_file_name(config_file_name)
    try:
        scheme = urlsplit(file_name).scheme
    except ValueError as exc:
        logger.error("Could not parse file path: %s", exc)
        return ""
    if scheme in ("http", "https"):
        return file_name
    return os.path.normpath(
        os.path.join(get_config_dir(config_dir), get_profile_dir(profile), file_name)
    )


def remove_unused_settings(
    config_map: Mapping[str, Any], base_key: str, used_keys: Iterable[str]
) -> dict[str, Any]:
    """A copy of ``config_map`` holding only settings whose full key is in ``used_keys``."""
    used = set(used_keys)

    def prune(node: Mapping[str, Any], prefix: str) -> dict[str, Any]:
        kept: dict[str, Any] = {}
        for key, value in node.items():
            full_key = build_base_key(prefix, key) if prefix else key
            if full_key in used:
                kept[key] = copy.deepcopy(value)
            elif isinstance(value, Mapping):
                sub = prune(value, full_key)
                if sub:
                    kept[key] = sub
        return kept

    return prune(config_map, base_key)


def merge_maps(dest: MutableMapping[str, Any], src: Mapping[str, Any] | None) -> None:
    """Merge ``src`` into ``dest`` in place; values from ``src`` win."""
    for key, value in (src or {}).items():
        existing = dest.get(key)
        if isinstance(existing, MutableMapping) and isinstance(value, Mapping):
            merge_maps(existing, value)
        else:
            dest[key] = copy.deepcopy(value)