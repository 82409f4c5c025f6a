# edgeboot

Configuration loading for services that keep their settings in YAML. The
package reads local or remote (`http`/`https`) configuration files, layers
common and private configuration together, applies environment-variable
overrides, works with a configuration provider through a client you supply,
and applies changes to the `Writable` section while the service runs.

Configuration is handled as plain nested dicts.

## Installation

```
pip install edgeboot
```

To run the tests:

```
pip install "edgeboot[test]"
pytest
```

## Modules

### `edgeboot.environment`

- `Variables(environ)`: a snapshot of an environment mapping (`None` means
  `os.environ`).
  - `override_config_map(config_map)` overrides settings in place and returns
    how many were overridden. A variable matches a setting when its name is the
    setting's path in upper case with `/` and `-` replaced by `_`; for example
    `WRITABLE_LOGLEVEL=DEBUG` overrides `Writable/LogLevel`. The new value is
    converted to the type of the old one (strings, booleans, integers, floats,
    comma-separated lists); any other type raises `ValueError`.
  - `use_registry()` returns `(use, was_set)` from `EDGEX_USE_REGISTRY`.
  - `override_config_provider_info(provider_config)` applies
    `EDGEX_CONFIG_PROVIDER`; the value `none` yields empty settings.
- `StartupInfo` and `get_startup_info()`: startup duration and retry interval
  in seconds (defaults 60 and 1), from `EDGEX_STARTUP_DURATION` and
  `EDGEX_STARTUP_INTERVAL`.
- `get_config_dir`, `get_profile_dir`, `get_config_file_name`,
  `get_common_config_file_name`, `get_remote_service_hosts`,
  `get_uri_request_timeout` and `overwrite_config`: each takes its value from
  the matching `EDGEX_*` variable when set (`EDGEX_CONFIG_DIR`,
  `EDGEX_PROFILE`, `EDGEX_CONFIG_FILE`, `EDGEX_COMMON_CONFIG`,
  `EDGEX_REMOTE_SERVICE_HOSTS`, `EDGEX_FILE_URI_TIMEOUT`,
  `EDGEX_OVERWRITE_CONFIG`), otherwise from the argument or a default.
- `parse_bool(text)`, `parse_duration(text)` (e.g. `"1h30m"`, `"15s"`) and
  `convert_to_type(old_value, value)`.

### `edgeboot.provider`

- `ServiceConfig`: host, port, protocol, type and base path of a
  configuration provider. `populate_from_url("keeper.http://localhost:59890")`
  fills it in and raises `ValueError` for a malformed URL; `get_url()` returns
  `protocol://host:port`.
- `ProviderInfo(env_vars, provider_url)`: settings from the URL with the
  environment override applied; `use_provider()` is true when a host is set.

### `edgeboot.fileload`

`load(path, secret_provider=None, timeout=None)` returns the bytes of a local
file or an `http`/`https` URL and raises `FileLoadError` on failure, including
any response status of 300 or above. A URL may carry an `edgexSecretName`
query parameter; the named secret is fetched with
`secret_provider.get_secret(name)` and must hold `type: httpheader`,
`headername` and `headercontents`, which become a request header. The timeout
defaults to `get_uri_request_timeout()` (15 seconds).

### `edgeboot.configpaths`

`build_base_key`, `walk_map_for_change`, `find_changed_key`,
`secret_names_changed`, `insecure_secret_name_full_path`,
`insecure_secret_data_full_path`, `apply_remote_hosts` (raises
`InvalidRemoteHostsError` unless given exactly three hosts),
`config_file_location`, `remove_unused_settings` and `merge_maps`.

### `edgeboot.processor`

- `Processor(options, env_vars, secret_provider, client_factory, timer)`:
  - `process(service_key, service_type, config_stem, service_config)` loads
    configuration into the `service_config` dict. Without a provider it reads
    the optional common file (its `all-services` section, plus `app-services`
    or `device-services` by `ServiceType`) and then the private file, applying
    environment overrides. With a provider it waits for the common
    configuration to be marked ready, loads common and private settings from
    provider clients, and pushes the local file to the provider when the
    provider has none or when overwriting is asked for. It then sets the log
    level from `Writable/LogLevel`, applies dev mode and remote hosts, and
    raises `ConfigError` on failure.
  - `load_custom_config_section(custom_config, section_name)` fills the
    settings `custom_config` already defines, from the provider or the file.
  - `overwrite_config()` tells whether local configuration overwrites the
    provider's.
- `ProcessorOptions`: provider URL, remote hosts, dev mode, common config file,
  overwrite flag, file name (`configuration.yaml`), directory and profile.
- `StartupTimer(duration, interval)` with `has_not_elapsed()`,
  `sleep_for_interval()` and `StartupTimer.from_environment()`.
- `ServiceType`: `APP`, `DEVICE`, `CORE`.
- `load_config_yaml(path, secret_provider)`: one YAML file as a dict.

A provider client is any object with `is_alive`, `has_configuration`,
`has_sub_configuration`, `get_configuration`, `get_configuration_keys`,
`get_configuration_value_by_full_path` and `put_configuration_map`;
`client_factory` receives a `ServiceConfig` and returns one.

### `edgeboot.watcher`

`WritableWatcher(service_config, secret_provider, metrics_manager, on_updated)`
merges updates into `Writable`. `apply_writable_updates(raw)` reacts to one
kind of change: a new log level sets logging; changed insecure secrets call
`secret_provider.secret_updated_at_secret_name(name)`; a new telemetry interval
calls `metrics_manager.reset_interval(timedelta)` (zero means
`timedelta.max`); anything else calls `on_updated()`.
`handle_private_update` ignores the first update it is given;
`process_common_change` skips changes that an app/device-common or private
setting overrides, checked with `is_key_in_config`.

## Example

```python
from edgeboot.environment import Variables
from edgeboot.provider import ProviderInfo

env = Variables({"WRITABLE_LOGLEVEL": "DEBUG"})
config = {"Writable": {"LogLevel": "INFO"}, "Service": {"Port": 59880}}
print(env.override_config_map(config), config["Writable"]["LogLevel"])  # 1 DEBUG

info = ProviderInfo(env, "keeper.http://localhost:59890")
print(info.use_provider(), info.service_config.get_url())  # True http://localhost:59890
```

## What the package does not do

- It has no configuration provider client of its own; the caller supplies one
  through `client_factory`.
- It does not watch the provider in the background: the caller passes received
  updates to `WritableWatcher`.
- It does not run a service: there is no command, no HTTP API, no service
  registry registration, no dependency container and no signal handling.