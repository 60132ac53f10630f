"""
Unit tests for configuration and pricing
"""

import os
from importlib import reload

import pytest

from config.pricing import (
    BATCH_GENERATION_COST,
    FREE_GENERATIONS_LIMIT,
    PLANS,
    STANDARD_IMAGE_COST,
    can_generate_nsfw,
    get_plan_credits,
    get_public_pricing,
    should_add_watermark,
)
from config.referral_config import build_referral_link, normalize_referral_code


def test_config_loading():
    """Test that configuration loads correctly"""
    from config.config import (
        API_RATE_LIMIT,
        SUPABASE_JWT_AUDIENCE,
        ModelConfig,
        WavespeedConfig,
    )

    assert API_RATE_LIMIT == "300/minute"
    assert SUPABASE_JWT_AUDIENCE == "authenticated"

    assert ModelConfig.IMAGE_ASPECT_RATIO == "9:16"
    assert ModelConfig.NAME_TEMPERATURE == 0.8

    assert WavespeedConfig.MAX_POLL_ATTEMPTS == 60
    assert WavespeedConfig.POLL_INTERVAL_SECONDS == 2.0


def test_boolean_flag_parsing():
    """Test ALLOW_DEV_USER_HEADER / RATE_LIMIT_ENABLED parsing"""
    import config.config as cfg

    saved = {key: os.environ.get(key) for key in ("ALLOW_DEV_USER_HEADER", "RATE_LIMIT_ENABLED")}
    try:
        os.environ["ALLOW_DEV_USER_HEADER"] = "TRUE"
        os.environ["RATE_LIMIT_ENABLED"] = "false"
        reload(cfg)
        assert cfg.ALLOW_DEV_USER_HEADER is True
        assert cfg.RATE_LIMIT_ENABLED is False

        del os.environ["ALLOW_DEV_USER_HEADER"]
        del os.environ["RATE_LIMIT_ENABLED"]
        reload(cfg)
        assert cfg.ALLOW_DEV_USER_HEADER is False  # default is False
        assert cfg.RATE_LIMIT_ENABLED is True  # default is True
    finally:
        for key, value in saved.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value
        reload(cfg)


def test_validate_config_reports_missing_keys():
    """validate_config lists every missing required variable"""
    import config.config as cfg

    with pytest.raises(ValueError) as exc_info:
        cfg.validate_config()

    message = str(exc_info.value)
    assert "SUPABASE_URL is required" in message
    assert "STRIPE_SECRET_KEY is required" in message
    assert "GOOGLE_API_KEY is required" in message


def test_plan_pricing():
    """Test plan credits and entitlements"""
    assert PLANS["base"].monthly_credits == 50
    assert PLANS["essential"].monthly_credits == 250
    assert PLANS["ultimate"].monthly_credits == 500
    assert PLANS["ultimate"].trial_days == 1

    # Unknown plan falls back to base credits
    assert get_plan_credits("unknown") == 50

    assert STANDARD_IMAGE_COST == 10
    assert BATCH_GENERATION_COST == 25
    assert FREE_GENERATIONS_LIMIT == 3


def test_plan_entitlements():
    assert can_generate_nsfw(None) is False
    assert can_generate_nsfw("base") is False
    assert can_generate_nsfw("essential") is True
    assert can_generate_nsfw("ultimate") is True

    assert should_add_watermark(None) is True
    assert should_add_watermark("base") is True
    assert should_add_watermark("essential") is False


def test_public_pricing_shape():
    pricing = get_public_pricing()

    assert pricing["currency"] == "GBP"
    assert [p["id"] for p in pricing["plans"]] == ["base", "essential", "ultimate"]
    assert pricing["costs"]["batchGeneration"] == 25
    assert pricing["freeGenerations"] == 3


def test_referral_helpers():
    assert normalize_referral_code("  abcd1234 ") == "ABCD1234"
    assert normalize_referral_code(None) == ""
    assert (
        build_referral_link("https://app.fanova.com/", "ABCD1234")
        == "https://app.fanova.com/register?ref=ABCD1234"
    )


# ============================================================================
# LOGGING
# ============================================================================


def test_secrets_redacted_from_log_messages():
    from config.logging import redact

    message = "auth=Bearer eyJhbGciOi.payload.sig key=sk_live_abc123 hook=whsec_XYZ"

    cleaned = redact(message)

    assert "eyJhbGciOi" not in cleaned
    assert "abc123" not in cleaned
    assert "XYZ" not in cleaned
    assert "Bearer [redacted]" in cleaned
    assert "sk_live_[redacted]" in cleaned


# ============================================================================
# PACKAGING
# ============================================================================


def test_package_metadata_has_no_readme_field():
    import tomllib
    from pathlib import Path

    pyproject = Path(__file__).parent.parent / "pyproject.toml"
    project = tomllib.loads(pyproject.read_text(encoding="utf-8"))["project"]

    assert project["name"] == "fanova-api"
    assert "readme" not in project
