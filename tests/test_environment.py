from datetime import timedelta

import pytest

from edgeboot import environment
from edgeboot.environment import (
    StartupInfo,
    Variables,
    convert_to_type,
    get_common_config_file_name,
    get_config_dir,
    get_config_file_name,
    get_profile_dir,
    get_remote_service_hosts,
    get_startup_info,
    get_uri_request_timeout,
    overwrite_config,
    parse_bool,
    parse_duration,
)

_ENV_KEYS = [
    "EDGEX_STARTUP_DURATION",
    "EDGEX_STARTUP_INTERVAL",
    "EDGEX_CONFIG_DIR",
    "EDGEX_PROFILE",
    "EDGEX_CONFIG_FILE",
    "EDGEX_COMMON_CONFIG",
    "EDGEX_FILE_URI_TIMEOUT",
    "EDGEX_REMOTE_SERVICE_HOSTS",
    "EDGEX_OVERWRITE_CONFIG",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_override_nested_values():
    config = {"Writable": {"LogLevel": "INFO"}, "Service": {"Port": 59880, "Host": "localhost"}}
    env = Variables({"WRITABLE_LOGLEVEL": "DEBUG", "SERVICE_PORT": "1234", "OTHER": "x"})
    count = env.override_config_map(config)
    assert count == 2
    assert config["Writable"]["LogLevel"] == "DEBUG"
    assert config["Service"]["Port"] == 1234
    assert config["Service"]["Host"] == "localhost"


def test_override_hyphenated_key():
    config = {"all-services": {"Host": "old"}}
    env = Variables({"ALL_SERVICES_HOST": "new"})
    assert env.override_config_map(config) == 1
    assert config["all-services"]["Host"] == "new"


def test_override_flattened_key():
    config = {"Writable/LogLevel": "INFO"}
    env = Variables({"WRITABLE_LOGLEVEL": "TRACE"})
    assert env.override_config_map(config) == 1
    assert config["Writable/LogLevel"] == "TRACE"


def test_override_list_and_bool():
    config = {"Hosts": ["x"], "Enabled": False}
    env = Variables({"HOSTS": " a, b ,c ", "ENABLED": "true"})
    assert env.override_config_map(config) == 2
    assert config["Hosts"] == ["a", "b", "c"]
    assert config["Enabled"] is True


def test_override_bad_value_raises():
    config = {"Enabled": False}
    env = Variables({"ENABLED": "maybe"})
    with pytest.raises(ValueError, match="ENABLED=maybe"):
        env.override_config_map(config)


def test_convert_unsupported_type():
    with pytest.raises(ValueError, match="not supported"):
        convert_to_type(None, "x")


def test_convert_numbers():
    assert convert_to_type(5, "42") == 42
    assert convert_to_type(1.5, "2.25") == 2.25
    with pytest.raises(ValueError):
        convert_to_type(5, "4.2")


@pytest.mark.parametrize("text", ["1", "t", "T", "TRUE", "true", "True"])
def test_parse_bool_true(text):
    assert parse_bool(text) is True


@pytest.mark.parametrize("text", ["0", "f", "F", "FALSE", "false", "False"])
def test_parse_bool_false(text):
    assert parse_bool(text) is False


def test_parse_bool_invalid():
    with pytest.raises(ValueError):
        parse_bool("yes")


def test_parse_duration():
    assert parse_duration("15s") == timedelta(seconds=15)
    assert parse_duration("1h30m") == timedelta(hours=1, minutes=30)
    assert parse_duration("-1.5s") == -timedelta(seconds=1.5)
    assert parse_duration("0") == timedelta(0)
    assert parse_duration("250ms") == timedelta(milliseconds=250)


@pytest.mark.parametrize("text", ["", "abc", "15", "1x", "-"])
def test_parse_duration_invalid(text):
    with pytest.raises(ValueError):
        parse_duration(text)


def test_startup_info_defaults():
    assert get_startup_info() == StartupInfo(duration=60, interval=1)


def test_startup_info_from_env(monkeypatch):
    monkeypatch.setenv("EDGEX_STARTUP_DURATION", "10")
    monkeypatch.setenv("EDGEX_STARTUP_INTERVAL", "-3")
    info = get_startup_info()
    assert info.duration == 10
    assert info.interval == 1


def test_config_dir(monkeypatch):
    assert get_config_dir("") == "./res"
    assert get_config_dir("mydir") == "mydir"
    monkeypatch.setenv("EDGEX_CONFIG_DIR", "envdir")
    assert get_config_dir("mydir") == "envdir"


def test_profile_dir(monkeypatch):
    assert get_profile_dir("") == ""
    assert get_profile_dir("docker") == "docker/"
    monkeypatch.setenv("EDGEX_PROFILE", "envprofile")
    assert get_profile_dir("docker") == "envprofile/"


def test_config_file_names(monkeypatch):
    assert get_config_file_name("a.yaml") == "a.yaml"
    assert get_common_config_file_name("c.yaml") == "c.yaml"
    monkeypatch.setenv("EDGEX_CONFIG_FILE", "b.yaml")
    monkeypatch.setenv("EDGEX_COMMON_CONFIG", "d.yaml")
    assert get_config_file_name("a.yaml") == "b.yaml"
    assert get_common_config_file_name("c.yaml") == "d.yaml"


def test_uri_request_timeout(monkeypatch):
    assert get_uri_request_timeout() == environment.DEFAULT_FILE_URI_TIMEOUT
    monkeypatch.setenv("EDGEX_FILE_URI_TIMEOUT", "bogus")
    assert get_uri_request_timeout() == environment.DEFAULT_FILE_URI_TIMEOUT
    monkeypatch.setenv("EDGEX_FILE_URI_TIMEOUT", "5s")
    assert get_uri_request_timeout() == timedelta(seconds=5)


def test_remote_service_hosts(monkeypatch):
    assert get_remote_service_hosts(None) is None
    assert get_remote_service_hosts(["x"]) == ["x"]
    monkeypatch.setenv("EDGEX_REMOTE_SERVICE_HOSTS", "h1,h2,h3")
    assert get_remote_service_hosts(["x"]) == ["h1", "h2", "h3"]


def test_overwrite_config(monkeypatch):
    assert overwrite_config() == (False, False)
    monkeypatch.setenv("EDGEX_OVERWRITE_CONFIG", "true")
    assert overwrite_config() == (True, True)
    monkeypatch.setenv("EDGEX_OVERWRITE_CONFIG", "bogus")
    assert overwrite_config() == (False, True)


def test_use_registry():
    assert Variables({}).use_registry() == (False, False)
    assert Variables({"EDGEX_USE_REGISTRY": "true"}).use_registry() == (True, True)
    assert Variables({"EDGEX_USE_REGISTRY": "false"}).use_registry() == (False, True)