import pytest

from league_app.config import Settings, load_settings, parse_thresholds


def test_defaults():
    settings = load_settings({})
    assert settings.database_url == "sqlite:///./league.db"
    assert settings.auto_lock_delay_minutes == 0
    assert settings.red_card_suspension_matches == 1
    assert settings.yellow_card_thresholds == {3: 1, 5: 1, 7: 2}
    assert settings.cors_origins == []


def test_environment_overrides():
    settings = load_settings(
        {
            "AUTO_LOCK_DELAY_MINUTES": "-15",
            "RED_CARD_SUSPENSION_MATCHES": "2",
            "YELLOW_CARD_THRESHOLDS": "4:1, 8:2",
            "CORS_ORIGINS": "https://league.example, https://admin.example",
            "SQL_ECHO": "yes",
        }
    )
    assert settings.auto_lock_delay_minutes == -15
    assert settings.red_card_suspension_matches == 2
    assert settings.yellow_card_thresholds == {4: 1, 8: 2}
    assert settings.cors_origins == ["https://league.example", "https://admin.example"]
    assert settings.sql_echo is True


@pytest.mark.parametrize("raw", ["3", "3:x", "0:1", "3:-1", "3:1,3:2"])
def test_invalid_thresholds_rejected(raw):
    with pytest.raises(ValueError):
        parse_thresholds(raw)


def test_red_card_matches_must_be_positive():
    with pytest.raises(ValueError):
        Settings(red_card_suspension_matches=0)
    with pytest.raises(ValueError):
        load_settings({"RED_CARD_SUSPENSION_MATCHES": "0"})
