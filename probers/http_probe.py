"""
Single-hop HTTP probing: one GET, no redirect following, short timeout.
Records whether the connection actually negotiated TLS, independent of the
scheme that was requested.
"""

import functools
import http.client
import io
import logging
import socket
import ssl
import time
from dataclasses import dataclass
from typing import Dict, Optional, Protocol, Tuple
from urllib.parse import quote, urljoin, urlsplit

from core.config import FetchConfig
from core.errors import TransportError
from core.models import Hop

log = logging.getLogger(__name__)

_PATH_SAFE = "/%:@!$&'()*+,;="


@dataclass(frozen=True)
class TransportResponse:
    status_code: int
    used_tls: bool
    location: Optional[str] = None


class Transport(Protocol):
    def send(self, url: str, headers: Dict[str, str], timeout: float) -> TransportResponse:
        ...


def _request_target(url: str) -> str:
    parts = urlsplit(url)
    path = quote(parts.path or "/", safe=_PATH_SAFE)
    if parts.query:
        return f"{path}?{quote(parts.query, safe=_PATH_SAFE + '?')}"
    return path


def _remaining(deadline: float) -> float:
    left = deadline - time.monotonic()
    if left <= 0:
        raise socket.timeout("timed out")
    return left


class _DeadlineReader(io.RawIOBase):
    """Socket reader that shrinks the socket timeout to what is left of the deadline."""

    def __init__(self, sock: socket.socket, deadline: float):
        self.sock = sock
        self.deadline = deadline

    def readable(self) -> bool:
        return True

    def readinto(self, b) -> int:
        self.sock.settimeout(_remaining(self.deadline))
        return self.sock.recv_into(b)


class _DeadlineResponse(http.client.HTTPResponse):
    def __init__(self, sock, debuglevel=0, method=None, url=None, deadline=None):
        super().__init__(sock, debuglevel, method, url)
        if deadline is not None:
            self.fp.close()
            self.fp = io.BufferedReader(_DeadlineReader(sock, deadline))


class HTTPClientTransport:
    """
    http.client transport. http.client never follows redirects on its own.
    The timeout bounds the whole exchange (connect, send, status line and
    headers), not each socket operation.
    """

    def __init__(self, verify_tls: bool = True):
        if verify_tls:
            self.context = ssl.create_default_context()
        else:
            self.context = ssl._create_unverified_context()

    def _connect(self, url: str, timeout: float, deadline: float) -> http.client.HTTPConnection:
        try:
            parts = urlsplit(url)
            port = parts.port
        except ValueError as exc:
            raise TransportError(f"invalid url {url!r}: {exc}") from exc
        if parts.scheme not in ("http", "https"):
            raise TransportError(f'unsupported protocol scheme "{parts.scheme}"')
        if not parts.hostname:
            raise TransportError(f"no host in request url {url!r}")
        if parts.scheme == "https":
            conn = http.client.HTTPSConnection(parts.hostname, port, timeout=timeout, context=self.context)
        else:
            conn = http.client.HTTPConnection(parts.hostname, port, timeout=timeout)
        conn.response_class = functools.partial(_DeadlineResponse, deadline=deadline)
        return conn

    def send(self, url: str, headers: Dict[str, str], timeout: float) -> TransportResponse:
        deadline = time.monotonic() + timeout
        conn = self._connect(url, timeout, deadline)
        try:
            conn.connect()
            conn.sock.settimeout(_remaining(deadline))
            conn.request("GET", _request_target(url), headers=headers)
            # getresponse() may close and drop the socket, so look at it first
            used_tls = isinstance(conn.sock, ssl.SSLSocket)
            resp = conn.getresponse()
            location = resp.getheader("Location")
            resp.close()
            return TransportResponse(status_code=resp.status, used_tls=used_tls, location=location)
        except (OSError, ValueError, http.client.HTTPException) as exc:
            # ValueError covers idna failures on bad host labels and unencodable request lines
            raise TransportError(f"GET {url}: {str(exc) or type(exc).__name__}") from exc
        finally:
            conn.close()


def authority(url: str) -> str:
    try:
        netloc = urlsplit(url).netloc
    except ValueError:
        rest = url.split("://", 1)[-1]
        netloc = rest.split("/", 1)[0]
    return netloc.rpartition("@")[2]


def resolve_location(base: str, location: str) -> str:
    """
    Resolve a Location header value against the request URL.
    Raises ValueError when the value cannot be parsed as a URL.
    """
    if any(ord(c) < 0x20 or ord(c) == 0x7F for c in location):
        raise ValueError("control character in location")
    target = urljoin(base, location.strip())
    parts = urlsplit(target)
    if " " in parts.netloc:
        raise ValueError(f"invalid character ' ' in host name {parts.netloc!r}")
    parts.port  # raises ValueError on a non-numeric or out-of-range port
    return target


class HopFetcher:
    def __init__(self, config: Optional[FetchConfig] = None, transport: Optional[Transport] = None):
        self.config = config or FetchConfig()
        self.transport = transport or HTTPClientTransport(verify_tls=self.config.verify_tls)

    def fetch(self, url: str) -> Tuple[Hop, Optional[str], Optional[str]]:
        """
        Perform exactly one GET against url.

        Returns (hop, next_url, error). A response without a Location header
        is terminal and not an error; an unparseable Location is an error.
        """
        hostname = authority(url)
        try:
            resp = self.transport.send(url, self.config.headers(), self.config.timeout_s)
        except TransportError as exc:
            err = str(exc)
            log.debug("fetch failed | url=%s | err=%s", url, err)
            return Hop(hostname=hostname, error=err), None, err

        insecure = not resp.used_tls
        log.debug("fetched | url=%s | status=%s | insecure=%s", url, resp.status_code, insecure)

        if not resp.location:
            return Hop(hostname=hostname, terminal=True, status_code=resp.status_code, insecure=insecure), None, None

        try:
            next_url = resolve_location(url, resp.location)
        except ValueError as exc:
            err = f"bad Location header {resp.location!r}: {exc}"
            return Hop(hostname=hostname, status_code=resp.status_code, insecure=insecure, error=err), None, err

        hop = Hop(hostname=hostname, status_code=resp.status_code, next=next_url, insecure=insecure)
        return hop, next_url, None
