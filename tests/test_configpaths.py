from pathlib import Path

import pytest

from edgeboot.configpaths import (
    INVALID_REMOTE_HOSTS_MESSAGE,
    InvalidRemoteHostsError,
    apply_remote_hosts,
    build_base_key,
    config_file_location,
    find_changed_key,
    insecure_secret_data_full_path,
    insecure_secret_name_full_path,
    merge_maps,
    remove_unused_settings,
    secret_names_changed,
    walk_map_for_change,
)
from edgeboot.environment import DEFAULT_CONFIG_DIR


@pytest.fixture
def clean_env(monkeypatch):
    for name in ("EDGEX_CONFIG_FILE", "EDGEX_CONFIG_DIR", "EDGEX_PROFILE"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_insecure_secret_paths_match_documented_examples():
    assert (
        insecure_secret_name_full_path("credentials001")
        == "Writable/InsecureSecrets/credentials001/SecretName"
    )
    assert (
        insecure_secret_data_full_path("credentials001", "username")
        == "Writable/InsecureSecrets/credentials001/SecretData/username"
    )


def test_build_base_key_joins_segments():
    key = build_base_key("edgex", "core-data", "Writable")
    assert key.split("/") == ["edgex", "core-data", "Writable"]


def test_walk_map_detects_changed_value():
    previous = {"LogLevel": "INFO", "Telemetry": {"Interval": "30s"}}
    updated = {"LogLevel": "DEBUG", "Telemetry": {"Interval": "30s"}}
    assert walk_map_for_change(previous, updated) == "LogLevel"


def test_walk_map_detects_nested_change():
    previous = {"LogLevel": "INFO", "Telemetry": {"Interval": "30s"}}
    updated = {"LogLevel": "INFO", "Telemetry": {"Interval": "10s"}}
    assert walk_map_for_change(previous, updated) == build_base_key("Telemetry", "Interval")


def test_walk_map_detects_new_sub_setting():
    previous = {"Telemetry": "none"}
    updated = {"Telemetry": {"Interval": "10s"}}
    assert walk_map_for_change(previous, updated) == build_base_key("Telemetry", "Interval")


def test_walk_map_unchanged_returns_empty():
    same = {"LogLevel": "INFO", "Telemetry": {"Interval": "30s"}}
    assert walk_map_for_change(same, dict(same)) == ""


def test_find_changed_key_detects_removed_item():
    previous = {"LogLevel": "INFO", "Extra": "value"}
    updated = {"LogLevel": "INFO"}
    assert find_changed_key(previous, updated) == "Extra"


def test_find_changed_key_none_when_equal_or_invalid():
    assert find_changed_key({"LogLevel": "INFO"}, {"LogLevel": "INFO"}) is None
    assert find_changed_key("not a map", {"LogLevel": "INFO"}) is None


def test_secret_names_changed_cases():
    previous = {
        "a": {"SecretName": "mqtt", "SecretData": {"username": "user"}},
        "b": {"SecretName": "db", "SecretData": {"username": "user"}},
        "c": {"SecretName": "old", "SecretData": {"username": "user"}},
        "d": {"SecretName": "same", "SecretData": {"username": "user"}},
    }
    current = {
        "a": {"SecretName": "mqtt", "SecretData": {"username": "other"}},
        "c": {"SecretName": "new", "SecretData": {"username": "user"}},
        "d": {"SecretName": "same", "SecretData": {"username": "user"}},
        "e": {"SecretName": "added", "SecretData": {"username": "user"}},
    }
    names = secret_names_changed(previous, current)
    assert sorted(names) == sorted(["mqtt", "db", "new", "old", "added"])
    assert "same" not in names


def test_secret_names_unchanged_is_empty():
    secrets = {"a": {"SecretName": "mqtt", "SecretData": {"username": "user"}}}
    assert secret_names_changed(secrets, secrets) == []


def test_apply_remote_hosts_sets_all_hosts():
    hosts = ["service-host", "dependency-host", "bind-addr"]
    bootstrap = {
        "Service": {"Host": "localhost", "ServerBindAddr": ""},
        "Config": {"Host": "localhost"},
        "MessageBus": {"Host": "localhost"},
        "Registry": {"Host": "localhost"},
        "Database": None,
        "Clients": {"core-data": {"Host": "localhost"}, "core-metadata": {"Host": "localhost"}},
    }
    apply_remote_hosts(hosts, bootstrap)
    assert bootstrap["Service"] == {"Host": hosts[0], "ServerBindAddr": hosts[2]}
    for section in ("Config", "MessageBus", "Registry"):
        assert bootstrap[section]["Host"] == hosts[1]
    assert bootstrap["Database"] is None
    assert {c["Host"] for c in bootstrap["Clients"].values()} == {hosts[1]}


@pytest.mark.parametrize("hosts", [None, [], ["a", "b"], ["a", "b", "c", "d"]])
def test_apply_remote_hosts_rejects_wrong_count(hosts):
    with pytest.raises(InvalidRemoteHostsError) as info:
        apply_remote_hosts(hosts, {"Service": {}})
    assert str(info.value) == INVALID_REMOTE_HOSTS_MESSAGE


def test_config_file_location_joins_dir_and_profile(clean_env):
    result = config_file_location("configuration.yaml", "cfgdir", "docker")
    assert Path(result) == Path("cfgdir", "docker", "configuration.yaml")


def test_config_file_location_defaults(clean_env):
    result = config_file_location("configuration.yaml", "", "")
    assert Path(result) == Path(DEFAULT_CONFIG_DIR, "configuration.yaml")


def test_config_file_location_env_overrides(clean_env):
    clean_env.setenv("EDGEX_PROFILE", "other")
    clean_env.setenv("EDGEX_CONFIG_FILE", "custom.yaml")
    result = config_file_location("configuration.yaml", "cfgdir", "docker")
    assert Path(result) == Path("cfgdir", "other", "custom.yaml")


def test_config_file_location_keeps_urls(clean_env):
    url = "https://config.example.com/configuration.yaml"
    assert config_file_location(url, "cfgdir", "docker") == url


def test_remove_unused_settings_keeps_only_used():
    config_map = {
        "Writable": {"LogLevel": "INFO", "Telemetry": {"Interval": "30s", "Enabled": True}},
        "Service": {"Host": "localhost"},
    }
    used = ["edgex/core-data/Writable/LogLevel", "edgex/core-data/Writable/Telemetry/Interval"]
    result = remove_unused_settings(config_map, "edgex/core-data", used)
    assert result == {"Writable": {"LogLevel": "INFO", "Telemetry": {"Interval": "30s"}}}
    assert config_map["Service"] == {"Host": "localhost"}


def test_remove_unused_settings_no_keys_gives_empty():
    assert remove_unused_settings({"Writable": {"LogLevel": "INFO"}}, "base", []) == {}


def test_merge_maps_deep_merges_with_source_winning():
    dest = {"Writable": {"LogLevel": "INFO", "Telemetry": {"Interval": "30s"}}, "Keep": 1}
    src = {"Writable": {"LogLevel": "DEBUG"}, "New": {"Value": True}}
    merge_maps(dest, src)
    assert dest == {
        "Writable": {"LogLevel": "DEBUG", "Telemetry": {"Interval": "30s"}},
        "Keep": 1,
        "New": {"Value": True},
    }


def test_merge_maps_with_none_source_is_unchanged():
    dest = {"Writable": {"LogLevel": "INFO"}}
    merge_maps(dest, None)
    assert dest == {"Writable": {"LogLevel": "INFO"}}