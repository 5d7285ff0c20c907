"""Tests for the YAML settings loader."""

from __future__ import annotations

import pathlib

import pytest

from psn_session_pool.auth.credential import AccountSeed
from psn_session_pool.config.settings import (
    NPSSO_ENV_VAR,
    ProxySettings,
    load_settings,
    parse_settings,
)
from psn_session_pool.errors import ConfigError

EXAMPLE = pathlib.Path(__file__).resolve().parent.parent / "config" / "settings.example.yaml"


def _write(tmp_path: pathlib.Path, text: str) -> pathlib.Path:
    path = tmp_path / "settings.yaml"
    path.write_text(text)
    return path


class TestLoadSettings:
    def test_example_file_loads(self) -> None:
        settings = load_settings(EXAMPLE, environ={})
        assert settings.region == "us"
        assert len(settings.accounts) == 2
        assert settings.accounts[0].online_id == "YourOnlineId"
        assert settings.accounts[1].npsso is None
        assert settings.pool.acquire_timeout == 30
        assert settings.http.proxies == ()

    def test_missing_file_raises(self, tmp_path: pathlib.Path) -> None:
        with pytest.raises(ConfigError, match="not found"):
            load_settings(tmp_path / "absent.yaml", environ={})

    def test_invalid_yaml_raises(self, tmp_path: pathlib.Path) -> None:
        path = _write(tmp_path, "accounts: [unclosed\n")
        with pytest.raises(ConfigError, match="not valid YAML"):
            load_settings(path, environ={})

    def test_top_level_must_be_mapping(self, tmp_path: pathlib.Path) -> None:
        path = _write(tmp_path, "- just\n- a list\n")
        with pytest.raises(ConfigError, match="mapping at the top level"):
            load_settings(path, environ={})

    def test_empty_file_with_env_npsso(self, tmp_path: pathlib.Path) -> None:
        path = _write(tmp_path, "")
        settings = load_settings(path, environ={NPSSO_ENV_VAR: "from-env"})
        assert settings.accounts == (AccountSeed(npsso="from-env"),)


class TestParseSettings:
    def test_defaults(self) -> None:
        settings = parse_settings({"accounts": ["seedA"]})
        assert settings.accounts == (AccountSeed(npsso="seedA"),)
        assert settings.language == "en"
        assert settings.pool.refresh_margin == 60
        assert settings.pool.acquire_timeout is None
        assert not settings.pool.retire_failed
        assert settings.http.timeout == 20.0

    def test_env_npsso_is_appended(self) -> None:
        settings = parse_settings({"accounts": ["seedA"]}, {NPSSO_ENV_VAR: "seedB"})
        assert [seed.npsso for seed in settings.accounts] == ["seedA", "seedB"]

    def test_no_accounts_raises(self) -> None:
        with pytest.raises(ConfigError, match="No accounts configured"):
            parse_settings({"region": "gb"})

    def test_account_without_credentials_raises(self) -> None:
        with pytest.raises(ConfigError, match="npsso or a refresh token"):
            parse_settings({"accounts": [{"online_id": "nobody"}]})

    def test_accounts_must_be_a_list(self) -> None:
        with pytest.raises(ConfigError, match="'accounts' must be a list"):
            parse_settings({"accounts": "seedA"})

    def test_invalid_number_raises(self) -> None:
        with pytest.raises(ConfigError, match="Invalid pool/http setting"):
            parse_settings({"accounts": ["seedA"], "pool": {"refresh_margin": "soon"}})

    def test_proxies(self) -> None:
        settings = parse_settings(
            {
                "accounts": ["seedA"],
                "http": {
                    "proxies": [
                        "http://10.0.0.1:3128",
                        {"url": "http://10.0.0.2:3128", "username": "u", "password": "p"},
                    ]
                },
            }
        )
        assert settings.http.proxies == (
            ProxySettings(url="http://10.0.0.1:3128"),
            ProxySettings(url="http://10.0.0.2:3128", username="u", password="p"),
        )

    def test_proxy_without_url_raises(self) -> None:
        with pytest.raises(ConfigError, match="need a 'url'"):
            parse_settings({"accounts": ["seedA"], "http": {"proxies": [{"username": "u"}]}})

    def test_proxy_password_hidden_from_repr(self) -> None:
        assert "secret" not in repr(ProxySettings(url="http://p", username="u", password="secret"))

    def test_max_size(self) -> None:
        settings = parse_settings({"accounts": ["seedA", "seedB"], "pool": {"max_size": 1}})
        assert settings.pool.max_size == 1
        assert parse_settings({"accounts": ["seedA"]}).pool.max_size is None

    @pytest.mark.parametrize("value", [0, -2, True])
    def test_invalid_max_size_raises(self, value: object) -> None:
        with pytest.raises(ConfigError, match="max_size must be a positive integer"):
            parse_settings({"accounts": ["seedA"], "pool": {"max_size": value}})

    @pytest.mark.parametrize("value", ["false", "no", 0, 1, None])
    def test_retire_failed_must_be_a_boolean(self, value: object) -> None:
        with pytest.raises(ConfigError, match="'retire_failed' must be true or false"):
            parse_settings({"accounts": ["seedA"], "pool": {"retire_failed": value}})

    def test_retire_failed_accepts_yaml_booleans(self, tmp_path: pathlib.Path) -> None:
        path = _write(tmp_path, "accounts: [seedA]\npool:\n  retire_failed: yes\n")
        assert load_settings(path, environ={}).pool.retire_failed is True
