"""Tests for settings loading (ledger_kernel/config.py)."""

import pytest
import yaml

from ledger_kernel.config import (
    DEFAULT_DATABASE_URL,
    CompletionPolicy,
    LedgerSettings,
    load_settings,
    load_yaml_file,
)


@pytest.fixture
def config_file(tmp_path):
    def _write(data) -> str:
        path = tmp_path / "ledger.yaml"
        path.write_text(yaml.safe_dump(data) if data is not None else "")
        return str(path)

    return _write


class TestDefaults:

    def test_defaults(self):
        settings = load_settings(environ={})

        assert settings.database_url == DEFAULT_DATABASE_URL
        assert settings.completion_policy == CompletionPolicy.BALANCE_ONLY
        assert settings.lock_timeout_ms == 5000
        assert settings.max_retries == 3
        assert settings.currency == "COP"
        assert settings.echo_sql is False

    def test_settings_are_frozen(self):
        settings = LedgerSettings()

        with pytest.raises(AttributeError):
            settings.max_retries = 10

    def test_policy_string_is_coerced(self):
        settings = LedgerSettings(completion_policy="paid_and_delivered")

        assert settings.completion_policy is CompletionPolicy.PAID_AND_DELIVERED

    @pytest.mark.parametrize("kwargs", [
        {"lock_timeout_ms": -1},
        {"max_retries": 0},
        {"retry_backoff_seconds": -0.1},
        {"currency": "PESOS"},
        {"completion_policy": "whenever"},
    ])
    def test_invalid_values(self, kwargs):
        with pytest.raises(ValueError):
            LedgerSettings(**kwargs)


class TestYaml:

    def test_yaml_values(self, config_file):
        path = config_file({
            "database_url": "postgresql://u:p@db/ledger",
            "completion_policy": "paid_and_delivered",
            "lock_timeout_ms": 2500,
            "echo_sql": True,
        })

        settings = load_settings(path, environ={})

        assert settings.database_url == "postgresql://u:p@db/ledger"
        assert settings.completion_policy == CompletionPolicy.PAID_AND_DELIVERED
        assert settings.lock_timeout_ms == 2500
        assert settings.echo_sql is True

    def test_config_path_from_env(self, config_file):
        path = config_file({"max_retries": 7})

        settings = load_settings(environ={"LEDGER_CONFIG": path})

        assert settings.max_retries == 7

    def test_empty_file_is_defaults(self, config_file):
        assert load_yaml_file(config_file(None)) == {}

    def test_unknown_key_rejected(self, config_file):
        path = config_file({"databse_url": "typo"})

        with pytest.raises(ValueError, match="Unknown config keys"):
            load_settings(path, environ={})

    def test_non_mapping_rejected(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ValueError):
            load_settings(path, environ={})

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_settings(tmp_path / "absent.yaml", environ={})


class TestEnvironment:

    def test_env_overrides_yaml(self, config_file):
        path = config_file({"max_retries": 2, "log_level": "info"})
        env = {
            "LEDGER_MAX_RETRIES": "5",
            "DATABASE_URL": "sqlite+pysqlite:///:memory:",
            "LEDGER_COMPLETION_POLICY": "PAID_AND_DELIVERED",
            "LEDGER_ECHO_SQL": "yes",
        }

        settings = load_settings(path, environ=env)

        assert settings.max_retries == 5
        assert settings.database_url == "sqlite+pysqlite:///:memory:"
        assert settings.completion_policy == CompletionPolicy.PAID_AND_DELIVERED
        assert settings.log_level == "INFO"
        assert settings.echo_sql is True

    def test_empty_env_value_ignored(self):
        settings = load_settings(environ={"LEDGER_MAX_RETRIES": ""})

        assert settings.max_retries == 3

    def test_bad_env_value(self):
        with pytest.raises(ValueError):
            load_settings(environ={"LEDGER_LOCK_TIMEOUT_MS": "soon"})
