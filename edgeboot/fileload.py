"""Loading configuration files from local disk or over HTTP(S)."""

from __future__ import annotations

import logging
import re
import urllib.error
import urllib.request
from datetime import timedelta
from pathlib import Path
from typing import Any, Mapping, Protocol
from urllib.parse import parse_qs, urlsplit, urlunsplit

from edgeboot.environment import get_uri_request_timeout

logger = logging.getLogger(__name__)

SECRET_NAME_PARAM = "edgexSecretName"
HTTP_HEADER_SECRET_TYPE = "httpheader"

_SCHEME_RE = re.compile(r"([A-Za-z][A-Za-z0-9+.\-]*):")
_REMOTE_SCHEMES = ("http", "https")


class FileLoadError(Exception):
    """Raised when a configuration file cannot be read."""


class SecretProvider(Protocol):
    """Anything that can hand out a named secret as a mapping."""

    def get_secret(self, secret_name: str, *keys: str) -> Mapping[str, str]: ...


def _url_scheme(path: str) -> str:
    """Return the lower-cased URL scheme of ``path``, or '' for plain paths."""
    if any(ord(char) < 0x20 or char == "\x7f" for char in path):
        raise FileLoadError("Could not parse file path: invalid control character in URL")
    match = _SCHEME_RE.match(path)
    if match:
        return match.group(1).lower()
    first_segment = path.split("/", 1)[0]
    if ":" in first_segment:
        raise FileLoadError(
            "Could not parse file path: first path segment in URL cannot contain colon"
        )
    return ""


def _redacted(url: str) -> str:
    """The URL with any password replaced by ``xxxxx``."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    if parts.password is None:
        return url
    host = parts.netloc.rsplit("@", 1)[1]
    netloc = f"{parts.username or ''}:xxxxx@{host}"
    return urlunsplit(parts._replace(netloc=netloc))


def _timeout_seconds(timeout: timedelta | float | None) -> float | None:
    if timeout is None:
        timeout = get_uri_request_timeout()
    seconds = timeout.total_seconds() if isinstance(timeout, timedelta) else float(timeout)
    return seconds if seconds > 0 else None


def _secret_header(secrets: Mapping[str, Any]) -> tuple[str, str]:
    if not secrets or secrets.get("type") != HTTP_HEADER_SECRET_TYPE:
        raise FileLoadError("Secret type is not httpheader")
    name = secrets.get("headername") or ""
    contents = secrets.get("headercontents") or ""
    if not name or not contents:
        raise FileLoadError("Secret headername and headercontents can not be empty")
    return name, contents


def _load_remote(
    url: str,
    secret_provider: SecretProvider | None,
    timeout: timedelta | float | None,
) -> bytes:
    redacted = _redacted(url)
    seconds = _timeout_seconds(timeout)
    try:
        request = urllib.request.Request(url, method="GET")
    except ValueError as exc:
        raise FileLoadError(
            f"Unable to create new request for remote file: {redacted}: {exc}"
        ) from exc

    secret_names = parse_qs(urlsplit(url).query).get(SECRET_NAME_PARAM)
    secret_name = secret_names[0] if secret_names else ""
    if secret_name:
        if secret_provider is None:
            raise FileLoadError(
                f"Secret {secret_name} requested but no secret provider is available"
            )
        header_name, header_contents = _secret_header(secret_provider.get_secret(secret_name))
        request.add_header(header_name, header_contents)

    try:
        with urllib.request.urlopen(request, timeout=seconds) as response:
            if response.status >= 300:
                raise FileLoadError(
                    f"Invalid status code {response.status} loading remote file: {redacted}"
                )
            try:
                return response.read()
            except OSError as exc:
                raise FileLoadError(f"Could not read remote file: {redacted}: {exc}") from exc
    except urllib.error.HTTPError as exc:
        exc.close()
        raise FileLoadError(
            f"Invalid status code {exc.code} loading remote file: {redacted}"
        ) from exc
    except (OSError, ValueError) as exc:
        raise FileLoadError(f"Could not get remote file: {redacted}: {exc}") from exc


def load(
    path: str,
    secret_provider: SecretProvider | None = None,
    timeout: timedelta | float | None = None,
) -> bytes:
    """Return the contents of a local file or an ``http``/``https`` URL.

    A URL may name a secret with the ``edgexSecretName`` query parameter; that
    secret must be of type ``httpheader`` and supplies a request header.
    ``timeout`` defaults to the value from the environment.
    """
    if _url_scheme(path) in _REMOTE_SCHEMES:
        return _load_remote(path, secret_provider, timeout)
    try:
        return Path(path).read_bytes()
    except OSError as exc:
        raise FileLoadError(f"Could not read file {path}: {exc}") from exc