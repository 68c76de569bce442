import threading
import time
from http.server import BaseHTTPRequestHandler, HTTPServer

import pytest

from core.config import FetchConfig
from core.errors import TransportError
from core.models import Result, UpgradePolicy
from pipeline.navigator import navigate
from probers import http_probe
from probers.http_probe import HopFetcher, HTTPClientTransport

from fakes import FakeTransport, plain, tls


def test_fetch_sends_configured_headers_and_timeout():
    transport = FakeTransport({"https://example.com/": tls()})
    cfg = FetchConfig(timeout_s=1.0, user_agent="UA/1", accept_language="en-US,en;q=0.9")
    HopFetcher(cfg, transport).fetch("https://example.com/")
    assert transport.headers[0]["User-Agent"] == "UA/1"
    assert transport.headers[0]["Accept-Language"] == "en-US,en;q=0.9"
    assert transport.timeouts == [1.0]


def test_terminal_response_without_location():
    fetcher = HopFetcher(transport=FakeTransport({"https://example.com/": tls(404)}))
    hop, next_url, error = fetcher.fetch("https://example.com/")
    assert error is None and next_url is None
    assert hop.terminal
    assert hop.status_code == 404
    assert hop.hostname == "example.com"
    assert hop.next is None


def test_empty_location_is_terminal():
    fetcher = HopFetcher(transport=FakeTransport({"https://example.com/": tls(302, "")}))
    hop, next_url, error = fetcher.fetch("https://example.com/")
    assert hop.terminal and next_url is None and error is None


def test_redirect_produces_next():
    fetcher = HopFetcher(transport=FakeTransport({"http://example.com/": plain(301, "https://example.com/")}))
    hop, next_url, error = fetcher.fetch("http://example.com/")
    assert error is None
    assert next_url == "https://example.com/"
    assert hop.next == next_url
    assert hop.insecure and not hop.terminal
    assert hop.status_code == 301


def test_relative_location_is_resolved():
    fetcher = HopFetcher(transport=FakeTransport({"https://example.com:8443/a/b": tls(302, "../login?x=1")}))
    _, next_url, _ = fetcher.fetch("https://example.com:8443/a/b")
    assert next_url == "https://example.com:8443/login?x=1"


def test_hostname_keeps_port():
    fetcher = HopFetcher(transport=FakeTransport({"http://example.com:8080/": plain()}))
    hop, _, _ = fetcher.fetch("http://example.com:8080/")
    assert hop.hostname == "example.com:8080"


@pytest.mark.parametrize("location", ["http://[::1/", "http://example.com:99999/", "http://exa mple.com/", "http://a\x00b/"])
def test_malformed_location_is_error(location):
    fetcher = HopFetcher(transport=FakeTransport({"http://example.com/": plain(302, location)}))
    hop, next_url, error = fetcher.fetch("http://example.com/")
    assert error
    assert next_url is None
    assert hop.error == error
    assert not hop.terminal
    assert hop.status_code == 302
    assert hop.insecure


def test_transport_error_is_recorded():
    fetcher = HopFetcher(transport=FakeTransport({"http://example.com/": TransportError("connection refused")}))
    hop, next_url, error = fetcher.fetch("http://example.com/")
    assert error == "connection refused"
    assert hop.error == "connection refused"
    assert hop.status_code == 0
    assert next_url is None


def test_hop_doc_omits_empty_fields():
    fetcher = HopFetcher(transport=FakeTransport({"https://example.com/": tls()}))
    hop, _, _ = fetcher.fetch("https://example.com/")
    assert hop.to_doc() == {
        "hostname": "example.com",
        "terminal": True,
        "status_code": 200,
        "insecure": False,
        "upgraded": False,
    }
    assert "upgraded" not in hop.to_doc(include_upgraded=False)


def test_transport_rejects_unsupported_scheme():
    with pytest.raises(TransportError, match="unsupported protocol scheme"):
        HTTPClientTransport().send("ftp://example.com/", {}, 1.0)


def test_transport_rejects_bad_port():
    with pytest.raises(TransportError):
        HTTPClientTransport().send("http://example.com:notaport/", {}, 1.0)


def test_request_target():
    assert http_probe._request_target("http://a") == "/"
    assert http_probe._request_target("http://a/x?y=1") == "/x?y=1"


class _RedirectHandler(BaseHTTPRequestHandler):
    seen_headers = {}

    def do_GET(self):
        type(self).seen_headers = dict(self.headers)
        self.send_response(301)
        self.send_header("Location", "https://example.com/")
        self.send_header("Content-Length", "0")
        self.end_headers()

    def log_message(self, *args):
        pass


def test_plain_transport_does_not_follow_redirects():
    server = HTTPServer(("127.0.0.1", 0), _RedirectHandler)
    thread = threading.Thread(target=server.handle_request, daemon=True)
    thread.start()
    try:
        url = f"http://127.0.0.1:{server.server_port}/"
        fetcher = HopFetcher(FetchConfig(timeout_s=5.0, user_agent="UA/1"))
        hop, next_url, error = fetcher.fetch(url)
    finally:
        thread.join(timeout=5)
        server.server_close()
    assert error is None
    assert hop.status_code == 301
    assert hop.insecure
    assert next_url == "https://example.com/"
    assert _RedirectHandler.seen_headers.get("User-Agent") == "UA/1"


def test_request_target_percent_encodes():
    assert http_probe._request_target("http://a/café?q=ü&r=1") == "/caf%C3%A9?q=%C3%BC&r=1"
    assert http_probe._request_target("http://a/already%20done") == "/already%20done"


def test_authority_of_unparseable_url():
    assert http_probe.authority("http://[::1/") == "[::1"


def test_transport_turns_bad_host_label_into_transport_error():
    with pytest.raises(TransportError):
        HTTPClientTransport().send("http://a..example.com/", {}, 1.0)


class _NonAsciiRedirectHandler(BaseHTTPRequestHandler):
    def do_GET(self):
        if self.path == "/":
            self.send_response(302)
            self.send_header("Location", "/café")
        else:
            self.send_response(200)
        self.send_header("Content-Length", "0")
        self.end_headers()

    def log_message(self, *args):
        pass


def test_non_ascii_redirect_is_followed():
    server = HTTPServer(("127.0.0.1", 0), _NonAsciiRedirectHandler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        fetcher = HopFetcher(FetchConfig(timeout_s=5.0))
        chain, result, error = navigate(f"127.0.0.1:{server.server_port}", "http", UpgradePolicy.NONE, fetcher)
    finally:
        server.shutdown()
        server.server_close()
        thread.join(timeout=5)
    assert error is None
    assert [h.status_code for h in chain] == [302, 200]
    assert chain[0].next.endswith("/café")
    assert result == Result.INSECURE


class _SlowHandler(BaseHTTPRequestHandler):
    def do_GET(self):
        try:
            for ch in b"HTTP/1.0 200 OK\r\n\r\n":
                self.wfile.write(bytes([ch]))
                self.wfile.flush()
                time.sleep(0.2)
        except OSError:
            pass

    def log_message(self, *args):
        pass


def test_timeout_bounds_whole_exchange():
    server = HTTPServer(("127.0.0.1", 0), _SlowHandler)
    thread = threading.Thread(target=server.handle_request, daemon=True)
    thread.start()
    try:
        fetcher = HopFetcher(FetchConfig(timeout_s=1.0))
        started = time.monotonic()
        hop, next_url, error = fetcher.fetch(f"http://127.0.0.1:{server.server_port}/")
        elapsed = time.monotonic() - started
    finally:
        thread.join(timeout=15)
        server.server_close()
    assert error
    assert "timed out" in error
    assert hop.status_code == 0
    assert next_url is None
    assert elapsed < 2.0
