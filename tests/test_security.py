from urllib.parse import urlencode

import hashlib
import hmac

import pytest

from tgvoice.core.security import data_check_string, sign_init_data, verify_init_data


TOKEN = "123456:TEST-BOT-TOKEN"


def _reference_hash(fields: dict[str, str], token: str) -> str:
    secret = hmac.new(b"WebAppData", token.encode(), hashlib.sha256).digest()
    dcs = "\n".join(f"{k}={fields[k]}" for k in sorted(fields))
    return hmac.new(secret, dcs.encode(), hashlib.sha256).hexdigest()


def test_signed_payload_verifies():
    fields = {"query_id": "AAHdF6IQ", "auth_date": "1700000000", "user": '{"id": 1, "first_name": "Ann"}'}
    init_data = urlencode({**fields, "hash": _reference_hash(fields, TOKEN)})
    assert verify_init_data(init_data, TOKEN) is True


def test_sign_init_data_matches_reference_algorithm():
    fields = {"b": "2", "a": "1", "user": '{"id":7}'}
    init_data = sign_init_data(fields, TOKEN)
    assert f"hash={_reference_hash(fields, TOKEN)}" in init_data
    assert verify_init_data(init_data, TOKEN)


def test_field_order_in_payload_does_not_matter():
    fields = {"auth_date": "1", "query_id": "q", "user": "{}"}
    digest = _reference_hash(fields, TOKEN)
    reordered = f"hash={digest}&user=%7B%7D&query_id=q&auth_date=1"
    assert verify_init_data(reordered, TOKEN)


def test_data_check_string_sorted_and_without_hash():
    assert data_check_string({"b": "2", "hash": "x", "a": "1"}) == "a=1\nb=2"


def test_wrong_token_fails():
    init_data = sign_init_data({"auth_date": "1", "user": '{"id":1}'}, TOKEN)
    assert verify_init_data(init_data, "654321:OTHER") is False


def test_every_single_byte_mutation_fails():
    init_data = sign_init_data({"auth_date": "1700000000", "query_id": "AAHdF6IQ"}, TOKEN)
    assert verify_init_data(init_data, TOKEN)

    for i, ch in enumerate(init_data):
        replacement = "x" if ch != "x" else "y"
        mutated = init_data[:i] + replacement + init_data[i + 1:]
        assert verify_init_data(mutated, TOKEN) is False, f"mutation at {i} accepted: {mutated}"


@pytest.mark.parametrize(
    "init_data",
    [
        "",
        "auth_date=1&user=%7B%7D",             # no hash
        "auth_date=1&hash=",                   # empty hash
        "not a querystring",
        "a=1&a=2&hash=deadbeef",               # duplicate key
        "hash=zz%ZZ",
    ],
)
def test_malformed_payload_fails_closed(init_data):
    assert verify_init_data(init_data, TOKEN) is False


def test_non_string_input_fails_closed():
    assert verify_init_data(None, TOKEN) is False  # type: ignore[arg-type]
    assert verify_init_data(b"hash=00", TOKEN) is False  # type: ignore[arg-type]


def test_empty_token_fails_closed():
    init_data = sign_init_data({"auth_date": "1"}, "")
    assert verify_init_data(init_data, "") is False
