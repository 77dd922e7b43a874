"""Tests for response descriptions evaluated through the stub backend."""

import pytest
from pydantic import BaseModel

from wireform import (
    BodyStream,
    Capability,
    DecodeError,
    DeserializationError,
    HttpError,
    IncompleteBodyError,
    Left,
    Right,
    StreamConsumedError,
    UnsupportedCapabilityError,
    as_binary,
    as_binary_always,
    as_either,
    as_file,
    as_file_always,
    as_json,
    as_json_always,
    as_stream_always,
    as_stream_with,
    as_text,
    as_text_always,
    as_websocket_pipe,
    basic_request,
    conditional,
    from_metadata,
    ignore,
)
from wireform.testing import StubBackend

URL = "http://api.example/items"


class Item(BaseModel):
    name: str
    price: int


def send(backend, description):
    return backend.send(basic_request.get(URL).response(description))


class TestTextAndBytes:
    """Tests for the default text decoding and raw bytes."""

    def test_default_description_is_as_text(self):
        """Test a plain request produces Right(text) for 2xx."""
        backend = StubBackend().when_any_request().then_respond("hello")
        response = backend.send(basic_request.get(URL))
        assert response.body == Right("hello")
        assert response.status == 200

    def test_non_success_is_left(self):
        """Test a 404 body becomes Left."""
        backend = StubBackend().when_any_request().then_respond("not found", status=404)
        assert backend.send(basic_request.get(URL)).body == Left("not found")

    def test_charset_from_content_type(self):
        """Test the body is decoded with the declared charset."""
        backend = (
            StubBackend()
            .when_any_request()
            .then_respond("héllo".encode("latin-1"), headers={"Content-Type": "text/plain; charset=latin-1"})
        )
        assert send(backend, as_text_always()).body == "héllo"

    def test_explicit_encoding_wins(self):
        """Test an explicit encoding overrides the header."""
        backend = (
            StubBackend()
            .when_any_request()
            .then_respond("héllo".encode("utf-16"), headers={"Content-Type": "text/plain; charset=latin-1"})
        )
        assert send(backend, as_text_always("utf-16")).body == "héllo"

    def test_unknown_charset_falls_back_to_utf8(self):
        """Test an unknown charset does not fail the send."""
        backend = StubBackend().when_any_request().then_respond("ok", headers={"Content-Type": "text/plain; charset=nope"})
        assert send(backend, as_text_always()).body == "ok"

    def test_binary(self):
        """Test bytes are returned unchanged, chunks joined."""
        backend = StubBackend().when_any_request().then_respond([b"\x00", b"\x01"])
        assert send(backend, as_binary_always()).body == b"\x00\x01"
        assert send(backend, as_binary()).body == Right(b"\x00\x01")

    def test_map_right_to_int(self):
        """Test mapping the success side only."""
        backend = StubBackend().when_any_request().then_respond("42")
        assert send(backend, as_text().map_right(int)).body == Right(42)

    def test_map_left(self):
        """Test mapping the error side only."""
        backend = StubBackend().when_any_request().then_respond("boom", status=500)
        assert send(backend, as_text().map_left(str.upper)).body == Left("BOOM")

    def test_map_composition(self):
        """Test map(f).map(g) gives the same result as map(g after f)."""
        backend = StubBackend().when_any_request().then_respond("abc")

        def f(b):
            return b.upper()

        def g(b):
            return len(b)

        chained = send(backend, as_binary_always().map(f).map(g)).body
        composed = send(backend, as_binary_always().map(lambda b: g(f(b)))).body
        assert chained == composed == 3

    def test_map_with_metadata(self):
        """Test mapping functions can see the status."""
        backend = StubBackend().when_any_request().then_respond("x", status=201)
        description = as_text_always().map_with_metadata(lambda body, meta: (meta.status, body))
        assert send(backend, description).body == (201, "x")

    def test_failing_mapper_is_decode_error(self):
        """Test an exception in a mapper is reported as DecodeError."""
        backend = StubBackend().when_any_request().then_respond("x")
        with pytest.raises(DecodeError):
            send(backend, as_binary_always().map(lambda b: 1 / 0))
        assert backend.open_resources == 0


class TestIgnore:
    """Tests for ignore()."""

    def test_ignore_drains_body(self):
        """Test the body is read and the connection released."""
        backend = StubBackend().when_any_request().then_respond([b"a", b"b"])
        assert send(backend, ignore()).body is None
        assert backend.body_reads == 1
        assert backend.open_resources == 0


class TestFromMetadata:
    """Tests for metadata-based selection."""

    def test_branch_selection(self):
        """Test the first matching branch is used, otherwise the default."""
        description = from_metadata(
            as_text_always().map(lambda t: f"other: {t}"),
            conditional(lambda m: m.status == 200, as_text_always().map(lambda t: f"ok: {t}")),
            conditional(lambda m: m.status == 204, ignore()),
        )
        ok = StubBackend().when_any_request().then_respond("a")
        empty = StubBackend().when_any_request().then_respond(b"", status=204)
        other = StubBackend().when_any_request().then_respond("c", status=500)
        assert send(ok, description).body == "ok: a"
        assert send(empty, description).body is None
        assert send(other, description).body == "other: c"

    def test_selection_runs_once_and_body_read_once(self):
        """Test conditions are evaluated once per response and the body read once."""
        calls = []

        def is_ok(meta):
            calls.append(meta.status)
            return meta.status == 200

        backend = StubBackend().when_any_request().then_respond("a")
        send(backend, from_metadata(as_text_always(), conditional(is_ok, as_binary_always())))
        assert calls == [200]
        assert backend.body_reads == 1

    def test_as_either(self):
        """Test custom error and success descriptions."""
        description = as_either(as_text_always(), as_binary_always())
        ok = StubBackend().when_any_request().then_respond("a")
        failed = StubBackend().when_any_request().then_respond("b", status=400)
        assert send(ok, description).body == Right(b"a")
        assert send(failed, description).body == Left("b")


class TestJson:
    """Tests for JSON descriptions."""

    def test_json_into_model(self):
        """Test validation into a pydantic model."""
        backend = StubBackend().when_any_request().then_respond('{"name": "pen", "price": 3}')
        assert send(backend, as_json(Item)).body == Right(Item(name="pen", price=3))

    def test_json_without_type(self):
        """Test plain json.loads when no type is given."""
        backend = StubBackend().when_any_request().then_respond("[1, 2]")
        assert send(backend, as_json()).body == Right([1, 2])

    def test_invalid_json_is_left(self):
        """Test a body that does not validate gives Left(DeserializationError)."""
        backend = StubBackend().when_any_request().then_respond('{"name": "pen"}')
        body = send(backend, as_json(Item)).body
        assert body.is_left
        assert isinstance(body.value, DeserializationError)
        assert body.value.body == '{"name": "pen"}'

    def test_http_error_is_left(self):
        """Test non-2xx responses give Left(HttpError) without parsing."""
        backend = StubBackend().when_any_request().then_respond("oops", status=503)
        body = send(backend, as_json(Item)).body
        assert isinstance(body.value, HttpError)
        assert body.value.status == 503
        assert body.value.body == "oops"

    def test_json_always_parses_error_bodies(self):
        """Test as_json_always ignores the status."""
        backend = StubBackend().when_any_request().then_respond('{"error": "x"}', status=400)
        assert send(backend, as_json_always()).body == Right({"error": "x"})


class TestOrFail:
    """Tests for or_fail()."""

    def test_right_is_unwrapped(self):
        """Test success values are unwrapped."""
        backend = StubBackend().when_any_request().then_respond("7")
        assert send(backend, as_text().map_right(int).or_fail()).body == 7

    def test_left_raises_http_error(self):
        """Test a non-2xx response fails the send."""
        backend = StubBackend().when_any_request().then_respond("missing", status=404)
        with pytest.raises(HttpError) as exc_info:
            send(backend, as_text().or_fail())
        assert exc_info.value.status == 404
        assert exc_info.value.body == "missing"

    def test_left_exception_is_raised_as_is(self):
        """Test a Left holding an exception raises that exception."""
        backend = StubBackend().when_any_request().then_respond("not json")
        with pytest.raises(DeserializationError):
            send(backend, as_json().or_fail())


class TestFile:
    """Tests for writing bodies to files."""

    def test_body_written_to_file(self, tmp_path):
        """Test chunks are written in order and the path returned."""
        target = tmp_path / "nested" / "body.bin"
        backend = StubBackend().when_any_request().then_respond([b"ab", b"cd"])
        assert send(backend, as_file_always(target)).body == target
        assert target.read_bytes() == b"abcd"

    def test_empty_body_creates_empty_file(self, tmp_path):
        """Test an empty body still produces a file."""
        target = tmp_path / "empty.bin"
        backend = StubBackend().when_any_request().then_respond(b"")
        send(backend, as_file_always(target))
        assert target.read_bytes() == b""

    def test_failure_before_first_chunk_leaves_no_file(self, tmp_path):
        """Test the file is not created until data arrives."""
        target = tmp_path / "never.bin"
        backend = StubBackend().when_any_request().then_respond([b"ab"], fail_after=0)
        with pytest.raises(IncompleteBodyError):
            send(backend, as_file_always(target))
        assert not target.exists()

    def test_failure_before_first_chunk_keeps_existing_file(self, tmp_path):
        """Test a file already at the target is untouched when no data arrived."""
        target = tmp_path / "existing.bin"
        target.write_bytes(b"precious")
        backend = StubBackend().when_any_request().then_respond([b"a"], fail_after=0)
        with pytest.raises(IncompleteBodyError):
            send(backend, as_file_always(target))
        assert target.read_bytes() == b"precious"
        assert backend.open_resources == 0

    def test_partial_file_removed(self, tmp_path):
        """Test a body failing part way leaves no truncated file."""
        target = tmp_path / "partial.bin"
        backend = StubBackend().when_any_request().then_respond([b"ab", b"cd"], fail_after=1)
        with pytest.raises(IncompleteBodyError):
            send(backend, as_file_always(target))
        assert not target.exists()
        assert backend.open_resources == 0

    def test_as_file_on_error_status(self, tmp_path):
        """Test as_file() only writes successful bodies."""
        target = tmp_path / "err.bin"
        backend = StubBackend().when_any_request().then_respond("nope", status=500)
        assert send(backend, as_file(target)).body == Left("nope")
        assert not target.exists()


class TestStreams:
    """Tests for streamed bodies on a blocking backend."""

    def test_unsafe_stream_owns_connection(self):
        """Test the caller owns the connection until the stream is read."""
        backend = StubBackend().when_any_request().then_respond([b"a", b"b"])
        stream = send(backend, as_stream_always()).body
        assert isinstance(stream, BodyStream)
        assert backend.open_resources == 1
        assert stream.read() == b"ab"
        assert backend.open_resources == 0

    def test_stream_single_consumption(self):
        """Test a stream cannot be iterated twice."""
        backend = StubBackend().when_any_request().then_respond("x")
        stream = send(backend, as_stream_always()).body
        stream.read()
        with pytest.raises(StreamConsumedError):
            list(stream)

    def test_closed_stream_releases_connection(self):
        """Test closing an unread stream releases the connection."""
        backend = StubBackend().when_any_request().then_respond("x")
        with send(backend, as_stream_always()).body:
            pass
        assert backend.open_resources == 0

    def test_stream_with_consumer(self):
        """Test a consumer runs during the send and the connection is released."""
        backend = StubBackend().when_any_request().then_respond([b"ab", b"c"])
        body = send(backend, as_stream_with(lambda s: sum(len(c) for c in s))).body
        assert body == Right(3)
        assert backend.open_resources == 0

    def test_streams_capability_checked_before_io(self):
        """Test a backend without streams rejects the request before sending."""
        backend = StubBackend(capabilities=()).when_any_request().then_respond("x")
        with pytest.raises(UnsupportedCapabilityError):
            send(backend, as_stream_always())
        assert backend.requests == []


class TestCapabilities:
    """Tests for capability declarations."""

    def test_capabilities_of_descriptions(self):
        """Test capabilities propagate through maps and branches."""

        async def pipe(inbound):
            async for frame in inbound:
                yield frame

        assert as_text().capabilities == frozenset()
        assert as_stream_always().map(lambda s: s).capabilities == {Capability.STREAMS}
        assert as_websocket_pipe(pipe).capabilities == {Capability.WEBSOCKETS}

    def test_websocket_rejected_by_blocking_backend(self):
        """Test websockets fail before I/O on a blocking backend."""

        async def pipe(inbound):
            async for frame in inbound:
                yield frame

        backend = StubBackend().when_any_request().then_respond("x")
        with pytest.raises(UnsupportedCapabilityError):
            send(backend, as_websocket_pipe(pipe))
        assert backend.requests == []

    def test_show(self):
        """Test descriptions render for logs."""
        assert "as bytes" in str(as_binary_always())
        assert str(ignore()) == "ignore"
