import pytest
import yaml
from pydantic import ValidationError

from ordergate.config.settings import Settings, create_default_config, load_settings


def test_defaults_are_valid() -> None:
    settings = Settings(_env_file=None)
    assert settings.run.dry_run
    assert settings.approval.decision_second == 45
    assert settings.approval.cancel_on_expiry
    assert settings.decision.strategy == "user_order_approval"


def test_slow_period_must_exceed_fast() -> None:
    with pytest.raises(ValidationError):
        Settings(indicators={"fast_period": 12, "slow_period": 12}, _env_file=None)


def test_thresholds_must_be_ordered() -> None:
    with pytest.raises(ValidationError):
        Settings(approval={"bullish_threshold": 0.6}, _env_file=None)


def test_decision_second_inside_period() -> None:
    with pytest.raises(ValidationError):
        Settings(instrument={"period_seconds": 30}, _env_file=None)

    settings = Settings(
        instrument={"period_seconds": 30}, approval={"decision_second": 20}, _env_file=None
    )
    assert settings.approval.decision_second == 20


def test_trading_validation_errors() -> None:
    settings = Settings(
        run={"dry_run": False},
        bridge={"base_url": ""},
        decision={"strategy": "simple_threshold", "buy_above": 1.2},
        _env_file=None,
    )
    errors = settings.validate_for_trading()
    assert "bridge.base_url not set" in errors
    assert "simple_threshold strategy needs buy_above and sell_below" in errors

    assert Settings(_env_file=None).validate_for_trading() == []


def test_load_settings_from_yaml(workspace_tmp_path, monkeypatch) -> None:
    monkeypatch.delenv("RUN_DRY_RUN", raising=False)
    config_path = workspace_tmp_path / "config.yaml"
    config_path.write_text(
        yaml.safe_dump(
            {
                "run": {"dry_run": False},
                "instrument": {"symbol": "XAUUSD", "period_seconds": 300},
                "approval": {"decision_second": 240, "price_tolerance": 0.5},
            }
        )
    )

    settings = load_settings(config_path)

    assert not settings.run.dry_run
    assert settings.instrument.symbol == "XAUUSD"
    assert settings.approval.decision_second == 240
    assert settings.approval.price_tolerance == 0.5


def test_env_overrides_dry_run(workspace_tmp_path, monkeypatch) -> None:
    config_path = workspace_tmp_path / "config.yaml"
    config_path.write_text(yaml.safe_dump({"run": {"dry_run": False}}))
    monkeypatch.setenv("RUN_DRY_RUN", "true")

    assert load_settings(config_path).run.dry_run


def test_default_config_round_trip(workspace_tmp_path, monkeypatch) -> None:
    monkeypatch.delenv("RUN_DRY_RUN", raising=False)
    config_path = workspace_tmp_path / "config.yaml"

    create_default_config(config_path)
    settings = load_settings(config_path)

    assert settings.bridge.base_url == "http://localhost:8080/api"
    assert settings.approval.max_order_hold_sec == 300
    assert settings.approval.strong_bearish_threshold == -0.5
