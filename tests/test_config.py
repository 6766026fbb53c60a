"""Tests for configuration loading."""

from pathlib import Path

from guardian.config import DEFAULT_LAYOUT_WEIGHTS, DEFAULT_SUSPICIOUS_TLDS, Config, load_config, validate_config


def _isolate(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for key in (
        "GUARDIAN_PORT",
        "HISTORY_CAP",
        "POPUP_HISTORY_CAP",
        "THREAT_FEED_URL",
        "HIGH_AUTO_DISMISS_SECONDS",
        "DOMAIN_AGE_ENABLED",
        "RDAP_URL",
    ):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("CONFIG_DIR", str(tmp_path / "config"))
    monkeypatch.setenv("DATA_DIR", str(tmp_path / "data"))
    (tmp_path / "config").mkdir()


def test_defaults(monkeypatch, tmp_path):
    _isolate(monkeypatch, tmp_path)
    config = load_config()
    assert config.port == 8090
    assert config.history_cap == 1000
    assert config.popup_history_cap == 100
    assert config.suspicious_tlds == DEFAULT_SUSPICIOUS_TLDS
    assert config.layout_weights == DEFAULT_LAYOUT_WEIGHTS
    assert config.domain_age_enabled is False
    assert config.database_path == tmp_path / "data" / "guardian.db"
    assert (tmp_path / "data").is_dir()


def test_env_overrides(monkeypatch, tmp_path):
    _isolate(monkeypatch, tmp_path)
    monkeypatch.setenv("GUARDIAN_PORT", "9000")
    monkeypatch.setenv("HISTORY_CAP", "50")
    monkeypatch.setenv("ML_ENABLED", "false")
    monkeypatch.setenv("HIGH_AUTO_DISMISS_SECONDS", "5")
    monkeypatch.setenv("DOMAIN_AGE_ENABLED", "true")
    monkeypatch.setenv("RDAP_URL", "https://rdap.example/domain/")
    config = load_config()
    assert config.port == 9000
    assert config.history_cap == 50
    assert config.ml_enabled is False
    assert config.high_auto_dismiss_seconds == 5
    assert config.domain_age_enabled is True
    assert config.rdap_url == "https://rdap.example/domain/"


def test_heuristics_file(monkeypatch, tmp_path):
    _isolate(monkeypatch, tmp_path)
    (tmp_path / "config" / "heuristics.yaml").write_text(
        """
url:
  suspicious_tlds: [".zip", ".mov"]
content:
  keyword_points: 5
  keyword_category_cap: 40
visual:
  brand_ml_threshold: 50
  layout_weights:
    unsafe_iframe: 70
    not_a_rule: 99
"""
    )
    config = load_config()
    assert config.suspicious_tlds == [".zip", ".mov"]
    assert config.keyword_points == 5
    assert config.keyword_category_cap == 40
    assert config.brand_ml_threshold == 50.0
    assert config.layout_weights["unsafe_iframe"] == 70
    assert "not_a_rule" not in config.layout_weights
    assert config.phishing_keywords


def test_broken_heuristics_file_is_ignored(monkeypatch, tmp_path):
    _isolate(monkeypatch, tmp_path)
    (tmp_path / "config" / "heuristics.yaml").write_text("url: [unclosed")
    assert load_config().suspicious_tlds == DEFAULT_SUSPICIOUS_TLDS


def test_whitelist_file(monkeypatch, tmp_path):
    _isolate(monkeypatch, tmp_path)
    (tmp_path / "config" / "whitelist.txt").write_text("# trusted\nWWW.Example.com\n\nbank.example\n")
    assert load_config().whitelist == {"example.com", "bank.example"}


def test_validate_config(tmp_path):
    config = Config(data_dir=tmp_path / "data", config_dir=tmp_path, history_cap=0, port=70000)
    errors = validate_config(config)
    assert "HISTORY_CAP must be positive" in errors
    assert "GUARDIAN_PORT must be between 1 and 65535" in errors

    assert validate_config(Config(data_dir=tmp_path / "data", config_dir=Path(tmp_path))) == []
