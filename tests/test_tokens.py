import string

from napkin_notes.server.tokens import generate_token, redact_token, tokens_match


def test_token_is_32_hex_chars():
    token = generate_token()
    assert len(token) == 32
    assert set(token) <= set(string.hexdigits.lower())


def test_tokens_do_not_repeat():
    tokens = {generate_token() for _ in range(200)}
    assert len(tokens) == 200


def test_redacted_token_hides_secret():
    token = generate_token()
    redacted = redact_token(token)
    assert token not in redacted
    assert redacted.startswith(token[:4])
    assert redact_token("abc") == "***"


def test_tokens_match_handles_non_ascii_input():
    token = generate_token()
    assert tokens_match(token, token)
    assert not tokens_match(token.upper() + "x", token)
    assert not tokens_match("tökén", token)
    assert not tokens_match("", token)
