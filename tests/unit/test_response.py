"""
Unit tests for the response framer.
"""

from datetime import datetime, timezone

import pytest

from apphost.http.response import ResponseFramer, format_http_date
from apphost.http.status_codes import HTTPStatus


EXPECTED_HEADER_ORDER = ["Date", "Server", "Content-Length", "Content-Type", "Connection"]


@pytest.fixture
def framer() -> ResponseFramer:
    return ResponseFramer("TestHost/1.0")


class TestResponseFramer:
    """Tests for ResponseFramer.write()."""

    def test_status_line_and_header_order(self, framer, fake_connection, parse_response):
        """Headers are exactly these, in exactly this order."""
        conn = fake_connection()
        framer.write(conn, HTTPStatus.OK, "text/plain", b"hello")

        response = parse_response(conn.output)
        assert conn.output.startswith(b"HTTP/1.1 200 OK\r\n")
        assert response.header_names == EXPECTED_HEADER_ORDER
        assert response.headers["server"] == "TestHost/1.0"
        assert response.headers["content-length"] == "5"
        assert response.headers["content-type"] == "text/plain"
        assert response.headers["connection"] == "close"
        assert response.body == b"hello"

    def test_date_header_is_gmt(self, framer, fake_connection, parse_response):
        conn = fake_connection()
        framer.write(conn, HTTPStatus.OK, "text/plain", b"")

        date = parse_response(conn.output).headers["date"]
        assert date.endswith(" GMT")
        datetime.strptime(date, "%a, %d %b %Y %H:%M:%S GMT")

    def test_location_only_when_given(self, framer, fake_connection, parse_response):
        conn = fake_connection()
        framer.write(conn, HTTPStatus.MOVED_PERMANENTLY, "text/html", b"moved", location="/demo/")

        response = parse_response(conn.output)
        assert conn.output.startswith(b"HTTP/1.1 301 Moved Permanently\r\n")
        assert response.header_names == EXPECTED_HEADER_ORDER + ["Location"]
        assert response.headers["location"] == "/demo/"

    def test_text_body_is_utf8(self, framer, fake_connection, parse_response):
        conn = fake_connection()
        framer.write(conn, HTTPStatus.OK, "text/plain; charset=utf-8", "héllo")

        response = parse_response(conn.output)
        assert response.headers["content-length"] == str(len("héllo".encode("utf-8")))
        assert response.body.decode("utf-8") == "héllo"

    def test_head_sends_headers_only(self, framer, fake_connection, parse_response):
        """HEAD keeps the real Content-Length but sends no body."""
        conn = fake_connection()
        framer.write(conn, HTTPStatus.OK, "text/plain", b"hello", head=True)

        response = parse_response(conn.output)
        assert response.headers["content-length"] == "5"
        assert response.body == b""

    def test_returns_content_length(self, framer, fake_connection):
        assert framer.write(fake_connection(), HTTPStatus.OK, "text/plain", b"abc") == 3


class TestFileBodies:
    """Tests for streamed file bodies."""

    def test_file_is_streamed_with_sendfile(self, framer, fake_connection, parse_response, tmp_path):
        path = tmp_path / "data.bin"
        path.write_bytes(b"x" * 10_000)
        conn = fake_connection()

        framer.write_file(conn, path, "application/octet-stream")

        response = parse_response(conn.output)
        assert conn.sendfile_calls == 1
        assert response.headers["content-length"] == "10000"
        assert response.body == b"x" * 10_000

    def test_head_skips_file_body(self, framer, fake_connection, parse_response, tmp_path):
        path = tmp_path / "data.txt"
        path.write_bytes(b"content")
        conn = fake_connection()

        framer.write_file(conn, path, "text/plain", head=True)

        response = parse_response(conn.output)
        assert conn.sendfile_calls == 0
        assert response.headers["content-length"] == "7"
        assert response.body == b""

    def test_empty_file(self, framer, fake_connection, parse_response, tmp_path):
        path = tmp_path / "empty.txt"
        path.write_bytes(b"")
        conn = fake_connection()

        framer.write_file(conn, path, "text/plain")

        assert parse_response(conn.output).headers["content-length"] == "0"


class TestConvenienceWrappers:
    """Tests for write_json / write_html."""

    def test_write_json(self, framer, fake_connection, parse_response):
        conn = fake_connection()
        framer.write_json(conn, HTTPStatus.NOT_FOUND, {"error": "nope", "name": "café"})

        response = parse_response(conn.output)
        assert response.status == 404
        assert response.headers["content-type"] == "application/json; charset=utf-8"
        assert response.json() == {"error": "nope", "name": "café"}
        assert b"\n  " in response.body  # indented

    def test_write_html(self, framer, fake_connection, parse_response):
        conn = fake_connection()
        framer.write_html(conn, HTTPStatus.OK, "<p>hi</p>")

        response = parse_response(conn.output)
        assert response.headers["content-type"] == "text/html; charset=utf-8"
        assert response.body == b"<p>hi</p>"


class TestFormatHttpDate:
    """Tests for format_http_date()."""

    def test_known_date(self):
        dt = datetime(2026, 10, 19, 12, 0, 5, tzinfo=timezone.utc)
        assert format_http_date(dt) == "Mon, 19 Oct 2026 12:00:05 GMT"

    def test_zero_padding(self):
        dt = datetime(2026, 1, 1, 1, 2, 3, tzinfo=timezone.utc)
        assert format_http_date(dt) == "Thu, 01 Jan 2026 01:02:03 GMT"


class TestHTTPStatus:
    """Tests for the status enum."""

    def test_phrases(self):
        assert HTTPStatus.OK.phrase == "OK"
        assert HTTPStatus.REQUEST_HEADER_FIELDS_TOO_LARGE.phrase == "Request Header Fields Too Large"

    def test_int_compatible(self):
        assert HTTPStatus(404) is HTTPStatus.NOT_FOUND
        assert HTTPStatus.NOT_FOUND.is_error
        assert not HTTPStatus.OK.is_error
