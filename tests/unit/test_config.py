"""
Unit tests for configuration loading.
"""

import json
import pytest

from bigbag.bootstrap.config import (
    BigBagConfig,
    BusinessRulesConfig,
    get_config,
    load_config,
    reset_config,
)
from bigbag.errors import ValidationError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """No BIGBAG_ variables, no home config, fresh global."""
    import os

    for name in list(os.environ):
        if name.startswith("BIGBAG_"):
            monkeypatch.delenv(name)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    reset_config()
    yield
    reset_config()


class TestDefaults:

    def test_defaults(self):
        config = BigBagConfig()
        assert config.business.waste_margin == 0.02
        assert config.business.variance_ok_pct == 5.0
        assert config.business.variance_warning_pct == 10.0
        assert config.storage.backend == "memory"
        assert config.api.port == 8000

    def test_to_dict(self):
        data = BigBagConfig().to_dict()
        assert data["business"]["waste_margin"] == 0.02
        assert data["storage"]["backend"] == "memory"


class TestFromEnv:

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("BIGBAG_WASTE_MARGIN", "0.05")
        monkeypatch.setenv("BIGBAG_STORE_BACKEND", "sql")
        monkeypatch.setenv("BIGBAG_API_PORT", "9001")
        monkeypatch.setenv("BIGBAG_API_CORS_ORIGINS", "http://a,http://b")
        monkeypatch.setenv("BIGBAG_JSON_LOGS", "TRUE")

        config = BigBagConfig.from_env()
        assert config.business.waste_margin == 0.05
        assert config.storage.backend == "sql"
        assert config.api.port == 9001
        assert config.api.cors_origins == ["http://a", "http://b"]
        assert config.logging.json_logs is True


class TestFromFile:

    def test_file_overrides_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("BIGBAG_API_PORT", "9001")
        path = tmp_path / "bigbag.json"
        path.write_text(json.dumps({
            "environment": "production",
            "business": {"waste_margin": 0.03},
            "api": {"host": "127.0.0.1"},
        }))

        config = BigBagConfig.from_file(str(path))
        assert config.environment == "production"
        assert config.business.waste_margin == 0.03
        assert config.api.host == "127.0.0.1"
        assert config.api.port == 9001

    def test_unknown_keys_ignored(self, tmp_path, caplog):
        path = tmp_path / "bigbag.json"
        path.write_text(json.dumps({"storage": {"flavour": "x"}}))

        config = BigBagConfig.from_file(str(path))
        assert not hasattr(config.storage, "flavour")
        assert "storage.flavour" in caplog.text

    def test_missing_file_uses_env(self, tmp_path):
        config = BigBagConfig.from_file(str(tmp_path / "nope.json"))
        assert config.environment == "development"

    def test_invalid_business_rules(self, tmp_path):
        path = tmp_path / "bigbag.json"
        path.write_text(json.dumps({"business": {"variance_ok_pct": 12.0}}))

        with pytest.raises(ValidationError) as exc:
            BigBagConfig.from_file(str(path))
        assert exc.value.field == "business.variance_warning_pct"


class TestBusinessRules:

    @pytest.mark.parametrize("margin", [-0.01, 1.0])
    def test_waste_margin_range(self, margin):
        with pytest.raises(ValidationError):
            BusinessRulesConfig(waste_margin=margin).validate()


class TestLoadConfig:

    def test_search_path(self, monkeypatch, tmp_path):
        (tmp_path / "config").mkdir()
        (tmp_path / "config" / "bigbag.json").write_text(json.dumps({"environment": "staging"}))
        monkeypatch.chdir(tmp_path)

        assert load_config().environment == "staging"
        assert get_config().environment == "staging"

    def test_explicit_path(self, tmp_path):
        path = tmp_path / "custom.json"
        path.write_text(json.dumps({"debug": True}))
        assert load_config(str(path)).debug is True

    def test_no_files(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        assert get_config().environment == "development"
