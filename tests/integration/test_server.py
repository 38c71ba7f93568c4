"""
Integration tests against a real server on an ephemeral port.
"""

import base64
import json
import socket
import threading
import time

import pytest

from apphost import AppHostServer, HostConfig


def header_lines_without_date(response) -> list:
    return [(name, value) for name, value in response.header_lines if name != "Date"]


class TestServing:
    """End-to-end requests over TCP."""

    def test_get_file(self, running_server, http_request):
        response = running_server.request(http_request("GET", "/hello.txt"))

        assert response.status == 200
        assert response.headers["connection"] == "close"
        assert response.body == b"hello world\n"

    def test_head_and_get_headers_match(self, running_server, http_request):
        get = running_server.request(http_request("GET", "/demo/icon.png"))
        head = running_server.request(http_request("HEAD", "/demo/icon.png"))

        assert get.headers["content-type"] == "image/png"
        assert header_lines_without_date(head) == header_lines_without_date(get)
        assert head.body == b""
        assert len(get.body) == int(get.headers["content-length"])

    def test_traversal_is_rejected(self, running_server, http_request):
        response = running_server.request(http_request("GET", "/../../etc/passwd"))
        assert response.status == 400

    def test_home_page_shows_listen_url(self, running_server, http_request):
        response = running_server.request(http_request("GET", "/"))

        assert response.status == 200
        assert f"http://localhost:{running_server.port}/".encode() in response.body

    def test_missing_app_manifest(self, running_server, http_request):
        response = running_server.request(http_request("GET", "/api/apps/missing/manifest"))

        assert response.status == 404
        assert response.json() == {"error": "Application directory was not found."}

    def test_request_split_across_packets(self, running_server, http_request):
        body = json.dumps({"name": "Slow"}).encode("utf-8")
        raw = http_request("POST", "/api/apps/notes/manifest", body)

        with socket.create_connection(("127.0.0.1", running_server.port), timeout=5) as sock:
            for index in range(0, len(raw), 7):
                sock.sendall(raw[index:index + 7])
                time.sleep(0.001)
            chunks = []
            while True:
                chunk = sock.recv(65536)
                if not chunk:
                    break
                chunks.append(chunk)
            received = b"".join(chunks)

        assert received.startswith(b"HTTP/1.1 200 OK\r\n")
        assert b'"name": "Slow"' in received


class TestUploads:
    """Staging scenarios over TCP."""

    def test_stage_and_delete(self, running_server, png_bytes, content_root, http_request, json_http_request):
        staged = running_server.request(json_http_request("POST", "/api/uploads/temp", {
            "fileName": "icon.png",
            "contentBase64": base64.b64encode(png_bytes).decode("ascii"),
        }))
        temp_id = staged.json()["tempId"]

        assert (content_root / "_uploads" / f"{temp_id}.png").exists()

        first = running_server.request(http_request("DELETE", f"/api/uploads/temp/{temp_id}"))
        second = running_server.request(http_request("DELETE", f"/api/uploads/temp/{temp_id}"))

        assert first.json() == {"deleted": True}
        assert second.json() == {"deleted": False}

    def test_stale_uploads_purged_at_startup(self, start_server, content_root):
        uploads = content_root / "_uploads"
        uploads.mkdir()
        (uploads / "stale.png").write_bytes(b"old")

        start_server()

        assert uploads.is_dir()
        assert list(uploads.iterdir()) == []


class TestConcurrency:
    """Connections are served independently."""

    def test_stalled_client_does_not_block_others(self, running_server, http_request):
        stalled = socket.create_connection(("127.0.0.1", running_server.port), timeout=5)
        try:
            stalled.sendall(b"GET /hello.txt HTTP/1.1\r\nHost: local")

            response = running_server.request(http_request("GET", "/hello.txt"))

            assert response.status == 200
        finally:
            stalled.close()

    def test_parallel_requests(self, running_server, http_request):
        results = []
        lock = threading.Lock()

        def fetch():
            response = running_server.request(http_request("GET", "/demo/app.js"))
            with lock:
                results.append(response.status)

        threads = [threading.Thread(target=fetch) for _ in range(10)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        assert results == [200] * 10

    def test_idle_connection_closed_without_response(self, running_server):
        with socket.create_connection(("127.0.0.1", running_server.port), timeout=5) as sock:
            sock.shutdown(socket.SHUT_WR)
            assert sock.recv(1024) == b""


class TestLifecycle:
    """Startup and shutdown."""

    def test_stop_returns(self, start_server):
        server = start_server()
        server.stop()

        assert server.server.supervisor.wait_for_shutdown(timeout=5)
        assert not server._thread.is_alive()

    def test_port_in_use(self, running_server, config):
        clash = AppHostServer(HostConfig(
            port=running_server.port,
            content_root=config.content_root,
            open_browser=False,
            log_level="WARNING",
        ))

        with pytest.raises(OSError):
            clash.supervisor.bind()
