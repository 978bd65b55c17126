import pytest

from nftwatch.config import Settings, load_settings, parse_list, validate_settings
from nftwatch.errors import ConfigurationError
from nftwatch.types import Category


def make_settings(**overrides):
    values = {
        "RESERVOIR_API_KEY": "key",
        "TRACKED_CONTRACTS": "0xabc",
        "DISCORD_MAIN_WEBHOOK_URL": "https://discord.com/api/webhooks/1/x",
        "_env_file": None,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("0xa,0xb", ["0xa", "0xb"]),
        (" 0xa , ,0xb ", ["0xa", "0xb"]),
        ('["0xa", "0xb"]', ["0xa", "0xb"]),
        ("", []),
    ],
)
def test_parse_list(raw, expected):
    assert parse_list(raw) == expected


def test_parse_list_rejects_bad_json():
    with pytest.raises(ConfigurationError):
        parse_list("[0xa")


def test_defaults():
    settings = make_settings()
    alert_config = validate_settings(settings)

    assert alert_config.cooldown_window_sec == 1800
    assert alert_config.override_fraction == 0.1
    assert alert_config.poll_interval_ms == 1000
    assert alert_config.enabled_categories == frozenset({Category.SALES, Category.BURN})
    assert settings.LISTINGS_WINDOW == 500
    assert settings.SALES_WINDOW == 100


def test_enabled_categories_parsed_case_insensitively():
    settings = make_settings(ENABLED_CATEGORIES="Floor, BID,listings")
    assert settings.enabled_categories() == frozenset({Category.FLOOR, Category.BID, Category.LISTINGS})


def test_unknown_category_rejected():
    with pytest.raises(ConfigurationError):
        make_settings(ENABLED_CATEGORIES="floor,mints").enabled_categories()


def test_tracked_contracts_deduplicated():
    settings = make_settings(TRACKED_CONTRACTS="0xAbC,0xabc,0xdef")
    assert settings.tracked_contracts() == ["0xAbC", "0xdef"]


@pytest.mark.parametrize(
    "overrides",
    [
        {"RESERVOIR_API_KEY": ""},
        {"TRACKED_CONTRACTS": ""},
        {"DISCORD_MAIN_WEBHOOK_URL": ""},
        {"ENABLED_CATEGORIES": ""},
    ],
)
def test_missing_required_settings_fatal(overrides):
    with pytest.raises(ConfigurationError):
        validate_settings(make_settings(**overrides))


def test_dry_run_does_not_need_webhook():
    validate_settings(make_settings(DISCORD_MAIN_WEBHOOK_URL="", DRY_RUN=True))


def test_invalid_values_wrapped(monkeypatch):
    monkeypatch.setenv("PRICE_CHANGE_OVERRIDE", "1.5")
    with pytest.raises(ConfigurationError):
        load_settings(_env_file=None)


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("ALERT_COOLDOWN_SEC", "60")
    monkeypatch.setenv("STATE_BACKEND", "memory")
    settings = load_settings(_env_file=None)

    assert settings.ALERT_COOLDOWN_SEC == 60
    assert settings.STATE_BACKEND == "memory"


def test_dump_omits_secrets():
    dump = make_settings().dump()
    assert dump["api_key_set"] is True
    assert "key" not in dump.values()
