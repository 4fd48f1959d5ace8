"""End-to-end test: send a streamed form over HTTP and parse it on the server side."""
from __future__ import annotations

import email.parser
import email.policy
import http.client
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer

import pytest

from formcontent import Form


class UploadHandler(BaseHTTPRequestHandler):
    """HTTP handler that records the request body it receives."""

    received: list[tuple[dict[str, str], bytes]] = []

    def log_message(self, format, *args):
        pass  # Suppress logging

    def do_POST(self):
        length = int(self.headers["Content-Length"])
        body = self.rfile.read(length)
        type(self).received.append((dict(self.headers), body))
        self.send_response(204)
        self.end_headers()


@pytest.fixture(scope="module")
def http_server():
    """Start a local HTTP server for testing."""
    server = HTTPServer(("127.0.0.1", 0), UploadHandler)
    thread = threading.Thread(target=server.serve_forever)
    thread.daemon = True
    thread.start()
    yield server.server_address
    server.shutdown()


def parse_form(content_type: str, body: bytes):
    raw = f"Content-Type: {content_type}\r\n\r\n".encode() + body
    return email.parser.BytesParser(policy=email.policy.default).parsebytes(raw)


class TestUpload:
    """Tests for sending a submission with a standard HTTP client."""

    def test_post_streamed_form(self, http_server, make_file):
        """The server receives exactly content_length bytes that parse as multipart."""
        form = Form()
        form.add_file("doc", make_file("report.txt", "some content"), "text/plain")
        form.add_file("blob", make_file("blob.bin", bytes(range(256)) * 40))
        form.add_field("title", "quarterly report")

        submission = form.finalize()
        conn = http.client.HTTPConnection(*http_server, timeout=5)
        try:
            conn.request("POST", "/upload", body=submission.content, headers=submission.headers)
            response = conn.getresponse()
            response.read()
        finally:
            conn.close()

        assert response.status == 204
        headers, body = UploadHandler.received[-1]
        assert len(body) == submission.content_length

        message = parse_form(headers["Content-Type"], body)
        assert message.is_multipart()
        parts = list(message.iter_parts())
        assert [p.get_param("name", header="content-disposition") for p in parts] == ["doc", "blob", "title"]
        assert parts[0].get_filename() == "report.txt"
        assert parts[0].get_payload(decode=True) == b"some content"
        assert parts[1].get_payload(decode=True) == bytes(range(256)) * 40
        assert parts[2].get_payload(decode=True) == b"quarterly report"

    def test_files_only_body_parses(self, make_file):
        """A body made only of files ends cleanly at the closing boundary."""
        form = Form()
        form.add_file("one", make_file("one.txt", "first"))
        form.add_file("two", make_file("two.txt", "second"))
        submission = form.finalize()

        message = parse_form(submission.content_type, submission.content.read())
        payloads = [p.get_payload(decode=True) for p in message.iter_parts()]
        assert payloads == [b"first", b"second"]
