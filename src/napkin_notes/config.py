"""
Runtime configuration for napkin_notes.

Every setting is read from an environment variable with a sensible default,
so the CLI can be driven from a ``.env`` file (loaded by the CLI through
python-dotenv) or from the shell.
"""

import os
from pathlib import Path
from typing import Optional

from napkin_notes.types import PortRange

DEFAULT_PORT_START = 8080
DEFAULT_PORT_END = 8090
DEFAULT_BIND_HOST = "0.0.0.0"
DEFAULT_FALLBACK_FILENAME = "image.jpg"
DEFAULT_MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB
DEFAULT_IDLE_TIMEOUT = 300.0  # 5 minutes
DEFAULT_UPLOAD_DIR = "napkin-uploads"
FILE_PREFIX = "physical-note"


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def get_port_range() -> PortRange:
    """
    Get the port range the server searches for a free port.

    Uses NAPKIN_PORT_START / NAPKIN_PORT_END if set, otherwise 8080-8090.

    Returns:
        Validated PortRange
    """
    return PortRange(
        _get_int("NAPKIN_PORT_START", DEFAULT_PORT_START),
        _get_int("NAPKIN_PORT_END", DEFAULT_PORT_END),
    )


def get_bind_host() -> str:
    """Interface to listen on. NAPKIN_BIND_HOST, defaults to all interfaces."""
    return os.getenv("NAPKIN_BIND_HOST") or DEFAULT_BIND_HOST


def get_upload_dir() -> Path:
    """
    Get the directory the CLI saves received images into.

    Uses NAPKIN_UPLOAD_DIR if set, otherwise ./napkin-uploads

    Returns:
        Path to upload directory
    """
    env_dir = os.getenv("NAPKIN_UPLOAD_DIR")
    if env_dir:
        return Path(env_dir).expanduser().resolve()
    return Path.cwd() / DEFAULT_UPLOAD_DIR


def get_max_file_size() -> Optional[int]:
    """Per-file upload limit in bytes. NAPKIN_MAX_FILE_SIZE, 0 means unlimited."""
    size = _get_int("NAPKIN_MAX_FILE_SIZE", DEFAULT_MAX_FILE_SIZE)
    return size if size > 0 else None


def get_idle_timeout() -> Optional[float]:
    """Seconds without requests before the server stops itself. 0 disables."""
    timeout = _get_float("NAPKIN_IDLE_TIMEOUT", DEFAULT_IDLE_TIMEOUT)
    return timeout if timeout > 0 else None


def get_fallback_filename() -> str:
    return os.getenv("NAPKIN_FALLBACK_FILENAME") or DEFAULT_FALLBACK_FILENAME


def validate_configuration() -> dict:
    """
    Resolve every setting and report problems instead of raising.

    Returns:
        Dict with setting names as keys and {"value", "ok", "error"} dicts as values
    """
    getters = {
        "port_range": get_port_range,
        "bind_host": get_bind_host,
        "upload_dir": get_upload_dir,
        "max_file_size": get_max_file_size,
        "idle_timeout": get_idle_timeout,
        "fallback_filename": get_fallback_filename,
    }

    results = {}
    for name, getter in getters.items():
        try:
            value = getter()
        except ValueError as exc:
            results[name] = {"value": None, "ok": False, "error": str(exc)}
            continue
        results[name] = {"value": value, "ok": True, "error": None}

    upload_dir = results["upload_dir"]["value"]
    if upload_dir is not None and upload_dir.exists() and not upload_dir.is_dir():
        results["upload_dir"].update(ok=False, error="exists but is not a directory")

    return results


def print_configuration():
    """Print current configuration for debugging."""
    print("=" * 80)
    print("napkin-notes Configuration")
    print("=" * 80)
    for name, info in validate_configuration().items():
        status = "✓" if info["ok"] else "✗"
        detail = info["value"] if info["ok"] else info["error"]
        print(f"  {status} {name:<18} {detail}")
    print("=" * 80)


if __name__ == "__main__":
    print_configuration()
