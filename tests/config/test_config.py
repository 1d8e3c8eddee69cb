import json
from pathlib import Path
from unittest.mock import patch

import pytest

from config.config import (
    DEFAULT_BASE_URL,
    KumihoConfig,
    _cli_main,
    _deep_merge,
    _expand_env_vars,
    get_config,
    load_config,
    load_yaml,
    reset_config,
    set_config,
)


def _write_yaml(tmp_path, text: str) -> Path:
    config_file = tmp_path / "config.yaml"
    config_file.write_text(text)
    return config_file


# =========================================================================
# load_yaml / env expansion / merge
# =========================================================================


class TestLoadYaml:
    def test_returns_empty_dict_for_nonexistent_file(self):
        assert load_yaml(Path("/nonexistent/path/config.yaml")) == {}

    def test_loads_yaml_file(self, tmp_path):
        config_file = _write_yaml(tmp_path, "key: value\nnested:\n  a: 1\n")
        assert load_yaml(config_file) == {"key": "value", "nested": {"a": 1}}

    def test_returns_empty_dict_for_empty_file(self, tmp_path):
        assert load_yaml(_write_yaml(tmp_path, "")) == {}


class TestExpandEnvVars:
    def test_expands_set_variable(self, monkeypatch):
        monkeypatch.setenv("KUMIHO_TEST_VAR", "value")
        assert _expand_env_vars({"a": "${KUMIHO_TEST_VAR}"}) == {"a": "value"}

    def test_default_used_when_unset(self, monkeypatch):
        monkeypatch.delenv("KUMIHO_TEST_VAR", raising=False)
        assert _expand_env_vars(["${KUMIHO_TEST_VAR:-fallback}"]) == ["fallback"]

    def test_unset_without_default_kept(self, monkeypatch):
        monkeypatch.delenv("KUMIHO_TEST_VAR", raising=False)
        assert _expand_env_vars("${KUMIHO_TEST_VAR}") == "${KUMIHO_TEST_VAR}"

    def test_non_strings_untouched(self):
        assert _expand_env_vars({"n": 5, "b": True}) == {"n": 5, "b": True}


class TestDeepMerge:
    def test_nested_merge(self):
        base = {"api": {"base_url": "a", "tenant_id": "t"}, "retry": {"max_attempts": 5}}
        result = _deep_merge(base, {"api": {"base_url": "b"}})
        assert result == {"api": {"base_url": "b", "tenant_id": "t"}, "retry": {"max_attempts": 5}}
        assert base["api"]["base_url"] == "a"


# =========================================================================
# KumihoConfig
# =========================================================================


class TestKumihoConfig:
    def test_defaults(self):
        config = KumihoConfig()
        assert config.base_url == DEFAULT_BASE_URL
        assert config.request_timeout_ms == 60000
        assert config.retry_budget_ms == 60000
        assert config.max_attempts == 5
        assert config.reconnect_delay_seconds == 30.0
        assert config.cursor_store_path == ""

    def test_type_coercion(self):
        config = KumihoConfig(
            request_timeout_ms="5000",
            max_attempts="3",
            reconnect_delay_seconds="2.5",
            log_level="debug",
            log_json="true",
        )
        assert config.request_timeout_ms == 5000
        assert config.max_attempts == 3
        assert config.reconnect_delay_seconds == 2.5
        assert config.log_level == "DEBUG"
        assert config.log_json is True

    @pytest.mark.parametrize(
        "field,value",
        [
            ("request_timeout_ms", 0),
            ("retry_budget_ms", -1),
            ("max_attempts", 0),
            ("reconnect_delay_seconds", -1),
        ],
    )
    def test_validate_rejects_non_positive(self, field, value):
        with pytest.raises(ValueError, match=field):
            KumihoConfig(**{field: value}).validate()

    def test_validate_rejects_inverted_delays(self):
        with pytest.raises(ValueError, match="max_delay_seconds"):
            KumihoConfig(base_delay_seconds=10, max_delay_seconds=1).validate()

    def test_validate_rejects_unknown_log_level(self):
        with pytest.raises(ValueError, match="log_level"):
            KumihoConfig(log_level="LOUD").validate()

    def test_retry_config(self):
        retry = KumihoConfig(max_attempts=3, retry_budget_ms=2000).retry_config()
        assert retry.max_attempts == 3
        assert retry.budget_seconds == 2.0
        assert retry.max_delay == 16.0

    def test_get_credentials(self):
        config = KumihoConfig(service_token="svc", tenant_id="")
        assert config.get_credentials() == {
            "base_url": DEFAULT_BASE_URL,
            "service_token": "svc",
            "tenant_id": None,
            "user_token": None,
        }

    def test_tokens_hidden(self):
        config = KumihoConfig(service_token="svc-secret", user_token="a.b.c")
        assert "svc-secret" not in repr(config)
        assert config.to_dict()["service_token"] == "[REDACTED]"
        assert config.to_dict()["user_token"] == "[REDACTED]"


# =========================================================================
# load_config
# =========================================================================


class TestLoadConfig:
    def test_explicit_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "missing.yaml")

    def test_default_file_optional(self, tmp_path):
        with patch("config.config.DEFAULT_CONFIG_FILE", tmp_path / "absent.yaml"):
            config = load_config()
        assert config.base_url == DEFAULT_BASE_URL

    def test_yaml_values(self, tmp_path):
        config_file = _write_yaml(
            tmp_path,
            """
kumiho:
  api:
    base_url: https://kumiho.example.com
    service_token: svc
  retry:
    max_attempts: 3
  stream:
    reconnect_delay_seconds: 5
""",
        )
        config = load_config(config_file)
        assert config.base_url == "https://kumiho.example.com"
        assert config.service_token == "svc"
        assert config.max_attempts == 3
        assert config.reconnect_delay_seconds == 5.0

    def test_env_overrides_yaml(self, tmp_path, monkeypatch):
        config_file = _write_yaml(tmp_path, "kumiho:\n  retry:\n    max_attempts: 3\n")
        monkeypatch.setenv("KUMIHO_MAX_ATTEMPTS", "7")
        monkeypatch.setenv("KUMIHO_SERVICE_TOKEN", "from-env")
        config = load_config(config_file)
        assert config.max_attempts == 7
        assert config.service_token == "from-env"

    def test_overrides_win(self, tmp_path, monkeypatch):
        config_file = _write_yaml(tmp_path, "kumiho: {}\n")
        monkeypatch.setenv("KUMIHO_TENANT_ID", "from-env")
        config = load_config(config_file, overrides={"api": {"tenant_id": "explicit"}})
        assert config.tenant_id == "explicit"

    def test_env_expansion_in_yaml(self, tmp_path, monkeypatch):
        config_file = _write_yaml(
            tmp_path, "kumiho:\n  stream:\n    cursor_store_path: ${CURSOR_DIR:-/tmp}/c.json\n"
        )
        monkeypatch.setenv("CURSOR_DIR", "/var/kumiho")
        assert load_config(config_file).cursor_store_path == "/var/kumiho/c.json"

    def test_invalid_values_raise(self, tmp_path):
        config_file = _write_yaml(tmp_path, "kumiho:\n  retry:\n    request_timeout_ms: 0\n")
        with pytest.raises(ValueError):
            load_config(config_file)

    def test_non_mapping_section_raises(self, tmp_path):
        config_file = _write_yaml(tmp_path, "kumiho: [1, 2]\n")
        with pytest.raises(ValueError):
            load_config(config_file)


class TestSingleton:
    def setup_method(self):
        reset_config()

    def teardown_method(self):
        reset_config()

    def test_set_and_get(self):
        config = KumihoConfig(service_token="svc")
        set_config(config)
        assert get_config() is config

    def test_get_loads_once(self, tmp_path):
        with patch("config.config.DEFAULT_CONFIG_FILE", tmp_path / "absent.yaml"):
            first = get_config()
            assert get_config() is first


class TestCli:
    def test_validate_json(self, tmp_path, capsys):
        config_file = _write_yaml(tmp_path, "kumiho:\n  api:\n    service_token: svc\n")
        argv = ["config", "--validate", "--show", "--json", "--config", str(config_file)]
        with patch("sys.argv", argv):
            assert _cli_main() == 0

        output = json.loads(capsys.readouterr().out)
        assert output["validation"]["passed"] is True
        assert output["config"]["service_token"] == "[REDACTED]"

    def test_missing_file(self, tmp_path, capsys):
        argv = ["config", "--validate", "--json", "--config", str(tmp_path / "nope.yaml")]
        with patch("sys.argv", argv):
            assert _cli_main() == 1
        assert "error" in json.loads(capsys.readouterr().out)
