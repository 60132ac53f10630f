# coding: utf-8
"""
Referral System Configuration

Centralized referral reward settings.
"""

import string

# =======================
# REWARDS
# =======================

# Credits granted to BOTH the referrer and the referred user
REFERRAL_CREDITS = 20


# =======================
# REFERRAL CODES
# =======================

REFERRAL_CODE_LENGTH = 8
REFERRAL_CODE_ALPHABET = string.ascii_uppercase + string.digits
REFERRAL_CODE_MAX_ATTEMPTS = 10

# Registration page that accepts ?ref=CODE
REFERRAL_LINK_PATH = "/register"


def build_referral_link(frontend_url: str, code: str) -> str:
    """
    Build public referral link

    Args:
        frontend_url: Frontend base URL
        code: Referral code

    Returns:
        Link like https://app/register?ref=ABCD1234
    """
    return f"{frontend_url.rstrip('/')}{REFERRAL_LINK_PATH}?ref={code}"


def normalize_referral_code(code: str) -> str:
    """Codes are matched trimmed and upper-cased"""
    return (code or "").strip().upper()
