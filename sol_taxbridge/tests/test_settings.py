from __future__ import annotations

from pydantic import ValidationError
import pytest

from sol_taxbridge.config import AppSettings, load_settings


def test_yaml_values_load(tmp_path, monkeypatch) -> None:
    monkeypatch.delenv("SOLTAX_SPAM_THRESHOLD", raising=False)
    config = tmp_path / "config.yaml"
    config.write_text(
        "wallets:\n  - W1\nspam_threshold: 0.7\napi_keys:\n  birdeye: abc\n",
        encoding="utf-8",
    )
    settings = load_settings(config)
    assert settings.wallets == ["W1"]
    assert settings.spam_threshold == 0.7
    assert settings.api_keys.birdeye == "abc"
    assert settings.concurrency == 10


def test_env_beats_yaml_and_init_beats_env(tmp_path, monkeypatch) -> None:
    config = tmp_path / "config.yaml"
    config.write_text("fee_threshold: 0.02\nconcurrency: 3\n", encoding="utf-8")
    monkeypatch.setenv("SOLTAX_FEE_THRESHOLD", "0.05")
    monkeypatch.setenv("SOLTAX_CONCURRENCY", "4")
    settings = load_settings(config, {"concurrency": 6})
    assert settings.fee_threshold == 0.05
    assert settings.concurrency == 6


def test_missing_yaml_is_ignored(tmp_path) -> None:
    settings = load_settings(tmp_path / "absent.yaml")
    assert settings.loss_tolerance == 0.95


@pytest.mark.parametrize(
    "overrides",
    [
        {"spam_threshold": 1.5},
        {"loss_tolerance": -0.1},
        {"fee_threshold": 0},
        {"concurrency": 0},
        {"price_concurrency": -2},
    ],
)
def test_invalid_values_rejected(overrides) -> None:
    with pytest.raises(ValidationError):
        AppSettings(**overrides)
