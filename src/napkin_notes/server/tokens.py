"""Session token minting."""
import secrets

TOKEN_BYTES = 16


def generate_token() -> str:
    """Return a fresh 32 character hex token from the OS CSPRNG."""
    return secrets.token_hex(TOKEN_BYTES)


def redact_token(token: str) -> str:
    """Shorten a token for log lines so the full secret never hits the logs."""
    if len(token) <= 8:
        return "***"
    return f"{token[:4]}…"


def tokens_match(candidate: str, token: str) -> bool:
    # compare_digest rejects non-ASCII str, so compare the encoded forms
    return secrets.compare_digest(candidate.encode("utf-8"), token.encode("utf-8"))
