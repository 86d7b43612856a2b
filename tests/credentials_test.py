"""Tests for credential minting."""

import re

from labdeploy.credentials import Credential, mint


def test_mint_is_hex_token() -> None:
    credential = mint()
    assert re.fullmatch(r"[0-9a-f]{32}", credential.value)
    assert credential.scope == "deployment"


def test_mint_never_repeats() -> None:
    values = {mint().value for _ in range(200)}
    assert len(values) == 200


def test_value_stays_out_of_repr() -> None:
    credential = Credential(value="0123456789abcdef0123456789abcdef")
    assert credential.value not in repr(credential)
    assert credential.value not in str(credential)
    assert credential.value not in f"{credential}"
