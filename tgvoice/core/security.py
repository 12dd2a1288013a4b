from __future__ import annotations

import enum
import hashlib
import hmac
from urllib.parse import parse_qsl, urlencode


WEBAPP_KEY = b"WebAppData"


class AuthMode(str, enum.Enum):
    DISABLED = "disabled"
    ENFORCED = "enforced"


def _parse_pairs(init_data: str) -> dict[str, str] | None:
    """
    Parse initData (a querystring) into key/value pairs.
    Returns None when the string can't be parsed or repeats a key.
    """
    try:
        pairs = parse_qsl(init_data, keep_blank_values=True, strict_parsing=True)
    except ValueError:
        return None

    data: dict[str, str] = {}
    for key, value in pairs:
        if key in data:
            return None
        data[key] = value
    return data


def data_check_string(fields: dict[str, str]) -> str:
    return "\n".join(f"{k}={v}" for k, v in sorted(fields.items()) if k != "hash")


def _calc_hash(data_check: str, bot_token: str) -> str:
    # secret_key = HMAC_SHA256(key="WebAppData", msg=bot_token)
    secret_key = hmac.new(WEBAPP_KEY, bot_token.encode("utf-8"), hashlib.sha256).digest()
    return hmac.new(secret_key, data_check.encode("utf-8"), hashlib.sha256).hexdigest()


def parse_init_data(init_data: str) -> dict[str, str]:
    """Parse initData into a dict. Raises ValueError on malformed input."""
    data = _parse_pairs(init_data)
    if data is None:
        raise ValueError("initData is not a valid querystring")
    return data


def verify_init_data(init_data: str, bot_token: str) -> bool:
    """
    Check a Telegram WebApp initData signature.

    Fails closed: any malformed input (missing hash, unparseable payload,
    empty token) yields False instead of raising.
    """
    if not isinstance(init_data, str) or not isinstance(bot_token, str):
        return False
    if not init_data or not bot_token:
        return False

    data = _parse_pairs(init_data)
    if data is None:
        return False

    received_hash = data.pop("hash", "")
    if not received_hash:
        return False

    expected_hash = _calc_hash(data_check_string(data), bot_token)
    return hmac.compare_digest(expected_hash.encode("ascii"), received_hash.encode("utf-8"))


def sign_init_data(fields: dict[str, str], bot_token: str) -> str:
    """Build a signed initData string for the given fields (tests, local clients)."""
    fields = {k: v for k, v in fields.items() if k != "hash"}
    signature = _calc_hash(data_check_string(fields), bot_token)
    return urlencode({**fields, "hash": signature})
