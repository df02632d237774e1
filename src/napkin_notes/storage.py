"""Save received photos to disk. Used as the CLI's upload consumer."""
import io
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

from PIL import Image

from napkin_notes.config import FILE_PREFIX
from napkin_notes.errors import InvalidImageError
from napkin_notes.types import UploadEvent

logger = logging.getLogger(__name__)

# extensions for the image MIME types the capture page may send
ALLOWED_EXTENSIONS = frozenset(
    {"jpg", "jpeg", "png", "gif", "webp", "bmp", "tif", "tiff", "svg", "ico"}
)
PIL_FORMAT_EXTENSIONS = {
    "JPEG": "jpg",
    # multi-picture JPEGs written by many phone cameras
    "MPO": "jpg",
    "PNG": "png",
    "GIF": "gif",
    "WEBP": "webp",
    "BMP": "bmp",
    "TIFF": "tiff",
    "ICO": "ico",
}


def _timestamp(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%d-%H-%M-%S")


def detect_format(payload: bytes, filename: str = "upload") -> str:
    """Return the extension matching the image in ``payload``; raise InvalidImageError if unreadable."""
    if Path(filename).suffix.lower() == ".svg":
        if b"<svg" not in payload[:4096]:
            raise InvalidImageError(f"'{filename}' is not a valid SVG image")
        return "svg"
    try:
        with Image.open(io.BytesIO(payload)) as img:
            fmt = img.format
            img.verify()
    except Exception:
        raise InvalidImageError(f"'{filename}' appears corrupted or unreadable") from None
    ext = PIL_FORMAT_EXTENSIONS.get(fmt or "")
    if ext is None:
        raise InvalidImageError(f"'{filename}' has unsupported image format {fmt}")
    return ext


class ImageStore:
    """
    Writes each uploaded photo to ``directory`` as ``<prefix>-<UTC timestamp>.<ext>``.

    Clashing names get a ``-1``, ``-2``... suffix, so bursts of photos within
    the same second are all kept.
    """

    def __init__(self, directory: Union[str, Path], prefix: str = FILE_PREFIX):
        self.directory = Path(directory)
        self.prefix = prefix

    def generate_filename(self, original: str, detected_ext: str, now: Optional[datetime] = None) -> str:
        ext = Path(original).suffix.lstrip(".").lower()
        if ext not in ALLOWED_EXTENSIONS:
            ext = detected_ext or "jpg"
        return f"{self.prefix}-{_timestamp(now)}.{ext}"

    def available_path(self, filename: str) -> Path:
        path = self.directory / filename
        stem, suffix = path.stem, path.suffix
        counter = 1
        while path.exists():
            path = self.directory / f"{stem}-{counter}{suffix}"
            counter += 1
        return path

    def save(self, event: UploadEvent) -> Path:
        detected = detect_format(event.payload, event.filename)
        self.directory.mkdir(parents=True, exist_ok=True)
        dest = self.available_path(self.generate_filename(event.filename, detected))
        dest.write_bytes(event.payload)
        logger.info("Saved %s (%d bytes) as %s", event.filename, event.size, dest.name)
        return dest
