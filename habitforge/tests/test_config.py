import logging

import pytest

from habitforge.core.config import Settings, validate_config


def test_defaults_are_valid():
    assert validate_config(strict=True, settings_obj=Settings()) is True


def test_strict_mode_raises_on_bad_values():
    cfg = Settings(BASE_EXPERIENCE_POINTS=0, LEVEL_EXPERIENCE_MULTIPLIER=0.5)
    with pytest.raises(RuntimeError) as exc:
        validate_config(strict=True, settings_obj=cfg)
    assert "BASE_EXPERIENCE_POINTS must be positive" in str(exc.value)
    assert "LEVEL_EXPERIENCE_MULTIPLIER" in str(exc.value)


def test_lenient_mode_only_warns(caplog):
    cfg = Settings(APP_TIMEZONE="Mars/Olympus_Mons")
    logger = logging.getLogger("habitforge.test_config")
    with caplog.at_level(logging.WARNING, logger="habitforge.test_config"):
        assert validate_config(strict=False, settings_obj=cfg, logger=logger) is True
    assert "APP_TIMEZONE" in caplog.text


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("STREAK_MULTIPLIER", "0.25")
    monkeypatch.setenv("APP_TIMEZONE", "Europe/Berlin")
    cfg = Settings()
    assert cfg.STREAK_MULTIPLIER == 0.25
    assert cfg.APP_TIMEZONE == "Europe/Berlin"
