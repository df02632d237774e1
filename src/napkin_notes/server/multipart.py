"""
Incremental multipart/form-data decoding.

The decoder is fed the request body chunk by chunk and hands back each file
part as soon as its closing boundary has been seen, so a caller can act on
the first photo while the rest of the request is still on the wire.
"""
import logging
from typing import AsyncIterator, List, Optional

from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import MultipartParser, parse_options_header

from napkin_notes.config import DEFAULT_FALLBACK_FILENAME
from napkin_notes.errors import FileTooLargeError, UploadParseError
from napkin_notes.types import UploadEvent

logger = logging.getLogger(__name__)


def _clean_filename(raw: Optional[bytes], fallback: str) -> str:
    if not raw:
        return fallback
    name = raw.decode("utf-8", errors="replace")
    # Older mobile browsers send the full client-side path
    name = name.replace("\\", "/").rsplit("/", 1)[-1].strip()
    return name or fallback


class MultipartFileStream:
    """
    Push-style decoder for one multipart/form-data request body.

    ``feed`` returns the file parts completed by that chunk; ``close`` checks
    that the closing boundary arrived. Form fields without a filename are
    skipped. A decoder that raised once must not be fed again.
    """

    def __init__(
        self,
        content_type: str,
        fallback_filename: str = DEFAULT_FALLBACK_FILENAME,
        max_file_size: Optional[int] = None,
    ):
        mime, params = parse_options_header(content_type or "")
        if mime.strip().lower() != b"multipart/form-data":
            raise UploadParseError(f"Expected multipart/form-data, got {content_type!r}")
        boundary = params.get(b"boundary")
        if not boundary:
            raise UploadParseError("multipart/form-data request has no boundary")

        self.fallback_filename = fallback_filename
        self.max_file_size = max_file_size

        self._completed: List[UploadEvent] = []
        self._headers: dict = {}
        self._header_field = bytearray()
        self._header_value = bytearray()
        self._filename: Optional[str] = None
        self._data = bytearray()
        self._oversized: Optional[str] = None
        self._error: Optional[UploadParseError] = None
        self._ended = False
        self.file_count = 0

        self._parser = MultipartParser(
            boundary,
            {
                "on_part_begin": self._on_part_begin,
                "on_header_field": self._on_header_field,
                "on_header_value": self._on_header_value,
                "on_header_end": self._on_header_end,
                "on_headers_finished": self._on_headers_finished,
                "on_part_data": self._on_part_data,
                "on_part_end": self._on_part_end,
                "on_end": self._on_end,
            },
        )

    # parser callbacks

    def _on_part_begin(self) -> None:
        self._headers = {}
        self._header_field.clear()
        self._header_value.clear()
        self._filename = None
        self._data = bytearray()

    def _on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._header_field.extend(data[start:end])

    def _on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._header_value.extend(data[start:end])

    def _on_header_end(self) -> None:
        self._headers[bytes(self._header_field).lower()] = bytes(self._header_value)
        self._header_field.clear()
        self._header_value.clear()

    def _on_headers_finished(self) -> None:
        disposition = self._headers.get(b"content-disposition", b"")
        _, options = parse_options_header(disposition)
        if b"filename" in options:
            self._filename = _clean_filename(options[b"filename"], self.fallback_filename)

    def _on_part_data(self, data: bytes, start: int, end: int) -> None:
        if self._filename is None or self._oversized is not None:
            return
        self._data.extend(data[start:end])
        if self.max_file_size is not None and len(self._data) > self.max_file_size:
            self._oversized = self._filename
            self._data = bytearray()

    def _on_part_end(self) -> None:
        if self._filename is None or self._oversized is not None:
            return
        self.file_count += 1
        event = UploadEvent(filename=self._filename, payload=bytes(self._data))
        logger.info("File received: %s, size: %d bytes", event.filename, event.size)
        self._completed.append(event)
        self._filename = None
        self._data = bytearray()

    def _on_end(self) -> None:
        self._ended = True

    # public API

    def _raise_pending(self) -> None:
        if self._error is not None:
            raise self._error

    def feed(self, chunk: bytes) -> List[UploadEvent]:
        """
        Decode ``chunk`` and return the file parts it completed.

        Parts finished before an error in the same chunk are still returned;
        the error is raised by the following feed() or close() call.
        """
        self._raise_pending()
        try:
            self._parser.write(chunk)
        except MultipartParseError as exc:
            self._error = UploadParseError(f"Malformed multipart body: {exc}")
            self._error.__cause__ = exc
        if self._oversized is not None and self._error is None:
            self._error = FileTooLargeError(self._oversized, self.max_file_size)
        completed, self._completed = self._completed, []
        if not completed:
            self._raise_pending()
        return completed

    def close(self) -> List[UploadEvent]:
        self._raise_pending()
        self._parser.finalize()
        if not self._ended:
            raise UploadParseError("Multipart body ended before the closing boundary")
        completed, self._completed = self._completed, []
        return completed


async def iter_upload_events(
    chunks: AsyncIterator[bytes],
    content_type: str,
    fallback_filename: str = DEFAULT_FALLBACK_FILENAME,
    max_file_size: Optional[int] = None,
) -> AsyncIterator[UploadEvent]:
    """
    Lazily yield one UploadEvent per file part of a streamed multipart body.

    Each event is yielded before the next chunk is awaited. The sequence is
    finite and, like the body stream behind it, can only be consumed once.
    """
    decoder = MultipartFileStream(content_type, fallback_filename, max_file_size)
    async for chunk in chunks:
        if not chunk:
            continue
        for event in decoder.feed(chunk):
            yield event
    for event in decoder.close():
        yield event
