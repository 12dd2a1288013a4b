from __future__ import annotations

import itertools
import json
import logging
from dataclasses import dataclass, replace

from tgvoice.core.security import AuthMode, parse_init_data, verify_init_data


logger = logging.getLogger(__name__)

# Test identities are handed out from a process-wide counter so that two
# anonymous sessions never collide on the same user id.
_test_ids = itertools.count(1000)


class AuthenticationError(Exception):
    """initData was supplied but its signature did not verify."""


@dataclass(frozen=True)
class Identity:
    id: int
    display_name: str
    avatar_url: str = ""
    username: str = ""
    first_name: str = ""
    last_name: str = ""
    is_test: bool = False
    # True only when the initData signature was checked and matched
    is_verified: bool = False


def make_test_identity() -> Identity:
    return Identity(
        id=next(_test_ids),
        display_name="Test User",
        username="TestUser",
        first_name="Test",
        last_name="User",
        is_test=True,
    )


def _display_name(user_id: int, username: str, first_name: str, last_name: str) -> str:
    if username:
        return username
    full = f"{first_name} {last_name}".strip()
    return full or f"user-{user_id}"


def identity_from_user_json(raw: str) -> Identity:
    """
    Build an Identity from the `user` field of initData.
    Raises ValueError when the JSON is malformed or lacks an integer id.
    """
    try:
        user = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(f"user is not valid JSON: {e}")

    if not isinstance(user, dict):
        raise ValueError("user must be a JSON object")

    user_id = user.get("id")
    if isinstance(user_id, bool) or not isinstance(user_id, int):
        raise ValueError("user.id must be an integer")

    username = str(user.get("username") or "")
    first_name = str(user.get("first_name") or "")
    last_name = str(user.get("last_name") or "")

    return Identity(
        id=user_id,
        display_name=_display_name(user_id, username, first_name, last_name),
        avatar_url=str(user.get("photo_url") or ""),
        username=username,
        first_name=first_name,
        last_name=last_name,
    )


def resolve_identity(init_data: str | None, *, mode: AuthMode, bot_token: str) -> Identity:
    """
    Resolve the caller's identity from Telegram WebApp initData.

    - no initData -> a fresh test identity
    - initData with a bad signature while enforcing -> AuthenticationError
    - otherwise the embedded `user` JSON, falling back to a test identity
      when it is missing or malformed
    """
    if init_data is None or not init_data.strip():
        identity = make_test_identity()
        logger.info("No initData provided, using test user %s", identity.id)
        return identity

    verified = False
    if mode is AuthMode.ENFORCED:
        if not verify_init_data(init_data, bot_token):
            logger.info("Rejected initData with invalid signature")
            raise AuthenticationError("invalid initData signature")
        verified = True

    try:
        fields = parse_init_data(init_data)
        raw_user = fields.get("user")
        if not raw_user:
            raise ValueError("initData has no user field")
        return replace(identity_from_user_json(raw_user), is_verified=verified)
    except ValueError as e:
        identity = make_test_identity()
        logger.info("Could not read user from initData (%s), using test user %s", e, identity.id)
        return identity
