import os
from pathlib import Path
from unittest.mock import patch

import pytest

from config.config import (
    SellerConfig,
    _deep_merge,
    _expand_env_vars,
    get_config,
    load_config,
    load_yaml,
    reset_config,
    set_config,
)
from core.oauth2.exceptions import InvalidConfigurationError


@pytest.fixture(autouse=True)
def no_default_config_file(monkeypatch, tmp_path):
    """Keep a developer's src/config/config.yaml out of the tests."""
    monkeypatch.setattr("config.config.DEFAULT_CONFIG_FILE", tmp_path / "absent.yaml")
    reset_config()
    yield
    reset_config()


def _write(tmp_path, text):
    path = tmp_path / "config.yaml"
    path.write_text(text)
    return path


# =========================================================================
# load_yaml
# =========================================================================


class TestLoadYaml:
    def test_returns_empty_dict_for_nonexistent_file(self):
        assert load_yaml(Path("/nonexistent/path/config.yaml")) == {}

    def test_loads_yaml_file(self, tmp_path):
        config_file = _write(tmp_path, "key: value\nnested:\n  a: 1\n")
        assert load_yaml(config_file) == {"key": "value", "nested": {"a": 1}}

    def test_returns_empty_dict_for_empty_file(self, tmp_path):
        assert load_yaml(_write(tmp_path, "")) == {}


# =========================================================================
# _expand_env_vars
# =========================================================================


class TestExpandEnvVars:
    def test_expands_set_variable(self):
        with patch.dict(os.environ, {"EBAY_CLIENT_ID": "my-app"}):
            assert _expand_env_vars("${EBAY_CLIENT_ID}") == "my-app"

    def test_uses_default_when_unset(self):
        assert _expand_env_vars("${EBAY_ENVIRONMENT:-sandbox}") == "sandbox"

    def test_empty_default(self):
        assert _expand_env_vars("${EBAY_CLIENT_SECRET:-}") == ""

    def test_unset_without_default_left_as_is(self):
        assert _expand_env_vars("${EBAY_NOT_SET}") == "${EBAY_NOT_SET}"

    def test_recurses_into_dicts_and_lists(self):
        with patch.dict(os.environ, {"EBAY_SCOPE": "s1"}):
            result = _expand_env_vars({"a": ["${EBAY_SCOPE}", 3], "b": {"c": "${EBAY_SCOPE}"}})
        assert result == {"a": ["s1", 3], "b": {"c": "s1"}}


# =========================================================================
# _deep_merge
# =========================================================================


class TestDeepMerge:
    def test_overlay_wins(self):
        assert _deep_merge({"a": 1, "b": 2}, {"b": 3}) == {"a": 1, "b": 3}

    def test_nested_merge(self):
        assert _deep_merge({"a": {"x": 1, "y": 2}}, {"a": {"y": 3}}) == {"a": {"x": 1, "y": 3}}

    def test_does_not_mutate_base(self):
        base = {"a": 1}
        _deep_merge(base, {"a": 2})
        assert base == {"a": 1}


# =========================================================================
# SellerConfig
# =========================================================================


class TestSellerConfig:
    def test_defaults(self):
        config = SellerConfig()
        assert config.environment == "sandbox"
        assert config.marketplace_id == "EBAY_US"
        assert config.safety_margin_seconds == 60
        assert config.exchange_timeout_seconds == 30
        assert config.grant_max_attempts == 3
        assert config.max_concurrent == 20
        assert config.has_client_credentials is False

    def test_coerces_string_values(self):
        config = SellerConfig(
            environment=" Production ",
            safety_margin_seconds="30",
            grant_max_attempts="5",
            max_concurrent="4",
            log_json="true",
            user_scopes="a b",
        )
        assert config.environment == "production"
        assert config.safety_margin_seconds == 30.0
        assert config.grant_max_attempts == 5
        assert config.max_concurrent == 4
        assert config.log_json is True
        assert config.user_scopes == ["a", "b"]

    def test_secrets_not_in_repr(self):
        config = SellerConfig(client_id="app", client_secret="s3cret", user_refresh_token="v^1.1#r")
        text = repr(config)
        assert "s3cret" not in text
        assert "v^1.1#r" not in text
        assert "app" in text

    def test_validate_accepts_defaults(self):
        SellerConfig().validate()

    def test_validate_requires_credentials_on_request(self):
        with pytest.raises(InvalidConfigurationError) as exc_info:
            SellerConfig(client_id="app").validate(require_credentials=True)
        assert "client_secret" in str(exc_info.value)

    def test_validate_reports_every_problem(self):
        config = SellerConfig(
            environment="staging",
            safety_margin_seconds=-1,
            exchange_timeout_seconds=0,
            max_concurrent=0,
        )
        with pytest.raises(InvalidConfigurationError) as exc_info:
            config.validate()

        problems = exc_info.value.context["problems"]
        assert len(problems) == 4
        joined = " ".join(problems)
        for key in ("environment", "safety_margin_seconds", "exchange_timeout_seconds", "max_concurrent"):
            assert key in joined

    def test_zero_safety_margin_allowed(self):
        SellerConfig(safety_margin_seconds=0).validate()


# =========================================================================
# load_config
# =========================================================================


class TestLoadConfig:
    def test_defaults_without_file_or_env(self):
        config = load_config()
        assert config.environment == "sandbox"
        assert config.client_id == ""

    def test_missing_explicit_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(config_path=tmp_path / "nope.yaml")

    def test_loads_nested_sections(self, tmp_path):
        path = _write(
            tmp_path,
            """
ebay:
  client_id: app
  client_secret: secret
  environment: production
  marketplace_id: EBAY_GB
  user_scopes:
    - https://api.ebay.com/oauth/api_scope
  tokens:
    safety_margin_seconds: 120
    grant_max_attempts: 5
  requests:
    timeout_seconds: 10
    max_concurrent: 8
  logging:
    level: DEBUG
    json: true
    file: logs/seller.log
""",
        )

        config = load_config(config_path=path)

        assert config.client_id == "app"
        assert config.environment == "production"
        assert config.marketplace_id == "EBAY_GB"
        assert config.user_scopes == ["https://api.ebay.com/oauth/api_scope"]
        assert config.safety_margin_seconds == 120
        assert config.grant_max_attempts == 5
        assert config.request_timeout_seconds == 10
        assert config.max_concurrent == 8
        assert config.log_level == "DEBUG"
        assert config.log_json is True
        assert config.log_file == "logs/seller.log"

    def test_file_without_ebay_section_rejected(self, tmp_path):
        path = _write(tmp_path, "kafka:\n  bootstrap_servers: x\n")
        with pytest.raises(InvalidConfigurationError, match="ebay"):
            load_config(config_path=path)

    def test_yaml_placeholders_expanded(self, tmp_path, monkeypatch):
        monkeypatch.setenv("EBAY_CLIENT_ID", "from-env")
        path = _write(tmp_path, "ebay:\n  client_id: ${EBAY_CLIENT_ID}\n  redirect_uri: ${EBAY_REDIRECT_URI:-}\n")

        config = load_config(config_path=path)

        assert config.client_id == "from-env"
        assert config.redirect_uri is None

    def test_env_overrides_yaml(self, tmp_path, monkeypatch):
        path = _write(tmp_path, "ebay:\n  marketplace_id: EBAY_DE\n  tokens:\n    safety_margin_seconds: 90\n")
        monkeypatch.setenv("EBAY_MARKETPLACE_ID", "EBAY_FR")
        monkeypatch.setenv("EBAY_SAFETY_MARGIN_SECONDS", "45")

        config = load_config(config_path=path)

        assert config.marketplace_id == "EBAY_FR"
        assert config.safety_margin_seconds == 45.0

    def test_tuning_values_from_env(self, monkeypatch):
        monkeypatch.setenv("EBAY_GRANT_MAX_ATTEMPTS", "5")
        monkeypatch.setenv("EBAY_EXCHANGE_TIMEOUT_SECONDS", "45")

        config = load_config()

        assert config.grant_max_attempts == 5
        assert config.exchange_timeout_seconds == 45.0

    def test_empty_env_value_ignored(self, tmp_path, monkeypatch):
        path = _write(tmp_path, "ebay:\n  marketplace_id: EBAY_DE\n")
        monkeypatch.setenv("EBAY_MARKETPLACE_ID", "")

        assert load_config(config_path=path).marketplace_id == "EBAY_DE"

    def test_overrides_beat_env(self, monkeypatch):
        monkeypatch.setenv("EBAY_ENVIRONMENT", "production")

        config = load_config(overrides={"environment": "sandbox", "max_concurrent": 2})

        assert config.environment == "sandbox"
        assert config.max_concurrent == 2

    def test_user_tokens_from_env(self, monkeypatch):
        monkeypatch.setenv("EBAY_USER_REFRESH_TOKEN", "v^1.1#refresh")
        assert load_config().user_refresh_token == "v^1.1#refresh"

    def test_unknown_keys_rejected(self, tmp_path):
        path = _write(tmp_path, "ebay:\n  client_idd: typo\n")
        with pytest.raises(InvalidConfigurationError) as exc_info:
            load_config(config_path=path)
        assert exc_info.value.context["unknown"] == ["client_idd"]

    def test_bad_number_rejected(self, monkeypatch):
        monkeypatch.setenv("EBAY_MAX_CONCURRENT", "lots")
        with pytest.raises(InvalidConfigurationError):
            load_config()

    def test_invalid_environment_rejected(self, monkeypatch):
        monkeypatch.setenv("EBAY_ENVIRONMENT", "staging")
        with pytest.raises(InvalidConfigurationError, match="environment"):
            load_config()

    def test_missing_credentials_only_warn(self, caplog):
        with caplog.at_level("WARNING", logger="config.config"):
            config = load_config()
        assert config.has_client_credentials is False
        assert any("credentials not configured" in r.getMessage() for r in caplog.records)


# =========================================================================
# singleton
# =========================================================================


class TestSingleton:
    def test_get_config_loads_once(self):
        first = get_config()
        assert get_config() is first

    def test_set_config(self):
        config = SellerConfig(client_id="x")
        set_config(config)
        assert get_config() is config

    def test_reset_config_forces_reload(self):
        first = get_config()
        reset_config()
        assert get_config() is not first
