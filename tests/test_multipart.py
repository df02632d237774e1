import asyncio

import pytest

from napkin_notes.errors import FileTooLargeError, UploadParseError
from napkin_notes.server.multipart import MultipartFileStream, iter_upload_events

from helpers import file_part, multipart_body

BOUNDARY = "napkinboundary"
CONTENT_TYPE = f"multipart/form-data; boundary={BOUNDARY}"


def decode_all(body, chunk_size=None, **kwargs):
    decoder = MultipartFileStream(CONTENT_TYPE, **kwargs)
    chunk_size = chunk_size or len(body)
    events = []
    for i in range(0, len(body), chunk_size):
        events.extend(decoder.feed(body[i : i + chunk_size]))
    events.extend(decoder.close())
    return events


def test_three_files_decoded_in_order():
    files = [("a.jpg", b"\xff\xd8alpha"), ("b.png", b"\x89PNGbeta" * 50), ("c.jpg", b"gamma\r\n--x")]
    events = decode_all(multipart_body(files))
    assert [(e.filename, e.payload) for e in events] == files


@pytest.mark.parametrize("chunk_size", [1, 7, 64])
def test_chunk_boundaries_do_not_matter(chunk_size):
    files = [("a.jpg", bytes(range(256)) * 3), ("b.png", b"second")]
    events = decode_all(multipart_body(files), chunk_size=chunk_size)
    assert [(e.filename, e.payload) for e in events] == files


def test_part_emitted_as_soon_as_next_boundary_arrives():
    decoder = MultipartFileStream(CONTENT_TYPE)
    first = file_part("a.jpg", b"first photo")
    # first part plus the headers of the second one, no closing boundary yet
    second_head = f"--{BOUNDARY}\r\nContent-Disposition: form-data; name=\"image\"; filename=\"b.jpg\"\r\n\r\n".encode()

    assert decoder.feed(first) == []
    events = decoder.feed(second_head + b"partial")
    assert [e.filename for e in events] == ["a.jpg"]

    events = decoder.feed(b" rest\r\n" + f"--{BOUNDARY}--\r\n".encode())
    assert [(e.filename, e.payload) for e in events] == [("b.jpg", b"partial rest")]
    assert decoder.close() == []
    assert decoder.file_count == 2


def test_missing_filename_falls_back():
    events = decode_all(multipart_body([("", b"data")]))
    assert events[0].filename == "image.jpg"

    events = decode_all(multipart_body([("", b"data")]), fallback_filename="photo.jpg")
    assert events[0].filename == "photo.jpg"


def test_client_path_components_stripped():
    events = decode_all(multipart_body([("C:\\Users\\me\\IMG_01.jpg", b"x"), ("dcim/IMG_02.jpg", b"y")]))
    assert [e.filename for e in events] == ["IMG_01.jpg", "IMG_02.jpg"]


def test_plain_form_fields_ignored():
    events = decode_all(multipart_body([("a.jpg", b"x")], fields=[("caption", b"hello")]))
    assert [e.filename for e in events] == ["a.jpg"]


def test_buffer_alias_matches_payload():
    (event,) = decode_all(multipart_body([("a.jpg", b"bytes")]))
    assert event.buffer == event.payload == b"bytes"
    assert event.size == 5


@pytest.mark.parametrize(
    "content_type",
    ["application/json", "multipart/form-data", "", "text/plain; boundary=abc"],
)
def test_bad_content_type_rejected(content_type):
    with pytest.raises(UploadParseError):
        MultipartFileStream(content_type)


def test_garbage_body_raises():
    decoder = MultipartFileStream(CONTENT_TYPE)
    with pytest.raises(UploadParseError):
        decoder.feed(b"this is not multipart at all")


def test_truncated_body_raises_without_emitting_partial_part():
    body = multipart_body([("a.jpg", b"complete"), ("b.jpg", b"cut short")])
    truncated = body[: body.index(b"cut short") + 3]
    decoder = MultipartFileStream(CONTENT_TYPE)
    events = decoder.feed(truncated)
    assert [e.filename for e in events] == ["a.jpg"]
    with pytest.raises(UploadParseError):
        decoder.close()


def test_oversized_part_rejected():
    body = multipart_body([("small.jpg", b"x" * 10), ("big.jpg", b"y" * 100)])
    with pytest.raises(FileTooLargeError) as exc_info:
        decode_all(body, max_file_size=50)
    assert exc_info.value.filename == "big.jpg"
    assert exc_info.value.limit == 50


def test_iter_upload_events_is_lazy():
    body = multipart_body([("a.jpg", b"one"), ("b.jpg", b"two")])
    cut = body.index(b"two")
    pulled = []

    async def chunks():
        pulled.append(1)
        yield body[:cut]
        pulled.append(2)
        yield body[cut:]

    async def run():
        stream = iter_upload_events(chunks(), CONTENT_TYPE)
        first = await stream.__anext__()
        # only the first chunk has been requested so far
        assert pulled == [1]
        rest = [event async for event in stream]
        return [first] + rest

    events = asyncio.run(run())
    assert [e.filename for e in events] == ["a.jpg", "b.jpg"]
