"""YAML-backed client settings.

Pattern: Declarative Settings File
-----------------------------------
``config/settings.yaml`` is the single declarative source for which accounts
the pool should manage and how requests leave the process::

    region: us
    language: en
    accounts:
      - npsso: "<64 character npsso>"
        online_id: MyOnlineId
      - refresh_token: "<refresh token saved from a previous run>"
    pool:
      max_size: 4
      acquire_timeout: 30
      refresh_margin: 60
      retire_failed: false
    http:
      timeout: 20
      proxies:
        - url: http://10.0.0.10:3128
          username: user
          password: pass

The file is read once into frozen dataclasses.  The ``PSN_NPSSO`` environment
variable adds one more account without touching the file.
"""

from __future__ import annotations

import dataclasses
import os
import pathlib
from typing import Any

import yaml

from psn_session_pool.auth.credential import AccountSeed
from psn_session_pool.errors import ConfigError

NPSSO_ENV_VAR = "PSN_NPSSO"


@dataclasses.dataclass(frozen=True)
class ProxySettings:
    url: str
    username: str | None = None
    password: str | None = dataclasses.field(default=None, repr=False)


@dataclasses.dataclass(frozen=True)
class PoolSettings:
    """Options for the ``SessionPool``.

    Attributes:
        max_size:        Accounts kept in rotation; the rest wait as backups
                         (``None`` puts every account in rotation).
        acquire_timeout: Seconds a caller may wait for a free session
                         (``None`` waits indefinitely).
        refresh_margin:  Seconds shaved off each access token's lifetime so
                         it is refreshed before PSN starts rejecting it.
        retire_failed:   Drop sessions from rotation once they fail.
    """

    max_size: int | None = None
    acquire_timeout: float | None = None
    refresh_margin: float = 60
    retire_failed: bool = False


@dataclasses.dataclass(frozen=True)
class HttpSettings:
    timeout: float = 20.0
    proxies: tuple[ProxySettings, ...] = ()


@dataclasses.dataclass(frozen=True)
class Settings:
    accounts: tuple[AccountSeed, ...]
    region: str = "us"
    language: str = "en"
    pool: PoolSettings = PoolSettings()
    http: HttpSettings = HttpSettings()


def load_settings(
    path: str | pathlib.Path,
    environ: dict[str, str] | None = None,
) -> Settings:
    """Read *path* and return validated ``Settings``.

    Raises ``ConfigError`` if the file is missing or malformed, or if it
    configures no account at all.
    """
    path = pathlib.Path(path)
    if not path.exists():
        raise ConfigError(f"Settings file not found: {path}")
    with open(path) as fh:
        try:
            data = yaml.safe_load(fh)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Settings file is not valid YAML: {exc}") from exc
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError("Settings file must contain a mapping at the top level")
    return parse_settings(data, environ if environ is not None else dict(os.environ))


def parse_settings(data: dict[str, Any], environ: dict[str, str] | None = None) -> Settings:
    accounts = [_parse_account(entry) for entry in _as_list(data, "accounts")]
    env_npsso = (environ or {}).get(NPSSO_ENV_VAR)
    if env_npsso:
        accounts.append(AccountSeed(npsso=env_npsso))
    if not accounts:
        raise ConfigError(
            f"No accounts configured; add an 'accounts' list or set {NPSSO_ENV_VAR}"
        )

    pool_block = _as_dict(data, "pool")
    http_block = _as_dict(data, "http")
    try:
        pool = PoolSettings(
            max_size=_optional_size(pool_block.get("max_size")),
            acquire_timeout=_optional_float(pool_block.get("acquire_timeout")),
            refresh_margin=float(pool_block.get("refresh_margin", 60)),
            retire_failed=_as_bool(pool_block, "retire_failed", False),
        )
        http = HttpSettings(
            timeout=float(http_block.get("timeout", 20.0)),
            proxies=tuple(_parse_proxy(entry) for entry in _as_list(http_block, "proxies")),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid pool/http setting: {exc}") from exc

    return Settings(
        accounts=tuple(accounts),
        region=str(data.get("region", "us")),
        language=str(data.get("language", "en")),
        pool=pool,
        http=http,
    )


# -- private helpers -----------------------------------------------------------

def _as_list(block: dict[str, Any], key: str) -> list[Any]:
    value = block.get(key) or []
    if not isinstance(value, list):
        raise ConfigError(f"'{key}' must be a list")
    return value


def _as_dict(block: dict[str, Any], key: str) -> dict[str, Any]:
    value = block.get(key) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{key}' must be a mapping")
    return value


def _optional_float(value: Any) -> float | None:
    return None if value is None else float(value)


def _optional_size(value: Any) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or int(value) < 1:
        raise ValueError(f"max_size must be a positive integer, got {value!r}")
    return int(value)


def _as_bool(block: dict[str, Any], key: str, default: bool) -> bool:
    value = block.get(key, default)
    if not isinstance(value, bool):
        raise ConfigError(f"'{key}' must be true or false, got {value!r}")
    return value


def _parse_account(entry: Any) -> AccountSeed:
    if isinstance(entry, str):
        entry = {"npsso": entry}
    if not isinstance(entry, dict):
        raise ConfigError(f"Account entries must be mappings, got {entry!r}")
    try:
        return AccountSeed(
            npsso=entry.get("npsso") or None,
            refresh_token=entry.get("refresh_token") or None,
            online_id=str(entry.get("online_id", "")),
        )
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc


def _parse_proxy(entry: Any) -> ProxySettings:
    if isinstance(entry, str):
        return ProxySettings(url=entry)
    if not isinstance(entry, dict) or "url" not in entry:
        raise ConfigError(f"Proxy entries need a 'url', got {entry!r}")
    return ProxySettings(
        url=str(entry["url"]),
        username=entry.get("username"),
        password=entry.get("password"),
    )
