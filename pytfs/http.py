"""HTTP transaction engine used by every TFS REST call.

An HttpExecutor owns the multiplexing context: a private asyncio event loop
driving one httpx.AsyncClient whose connection pool is reused by every
transaction the executor runs. Callers stay synchronous; ``execute`` blocks
until the transaction completes, waiting on the loop in bounded slices
instead of a blocking socket read.

Usage constraint: an executor drives one transaction at a time and must not
be shared between threads. Registering a second transaction while one is in
progress raises TfsTransportError.
"""

from __future__ import annotations

import asyncio
import atexit
import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, BinaryIO

import httpx
from httpx_ntlm import HttpNtlmAuth

from .exceptions import TfsTransportError
from .utils import SUCCESS_STATUS_CODES, format_elapsed

logger = logging.getLogger(__name__)
wire_logger = logging.getLogger(f"{__name__}.wire")

# HTTP response codes
STATUS_OK = 200
STATUS_CREATED = 201
STATUS_NO_CONTENT = 204
STATUS_FORBIDDEN = 403
STATUS_ERROR = 500

# Longest single wait on the event loop, in seconds
POLL_INTERVAL = 1.0

# Modern Chrome on Windows 10
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/75.0.3770.90 Safari/537.36"
)


def _header_line(key: bytes, value: bytes) -> str:
    line = f"{key.decode('latin-1')}: {value.decode('latin-1')}"
    return line.rstrip("\r\n")


def _printable(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


@dataclass
class HttpResponse:
    """Result of one HTTP transaction."""

    status_code: int = 0
    """Final status code, 0 when no response was received"""

    body: bytes = b""
    """Response body (empty when streamed to a file)"""

    headers: list[str] = field(default_factory=list)
    """Response header lines in arrival order (e.g. Content-Type: text/html)"""

    elapsed: float = 0.0
    """Wall-clock duration of the transaction in seconds"""

    error: str | None = None
    """Transport error description, if the transaction failed"""

    @property
    def ok(self) -> bool:
        """True only for 200 OK and 201 Created with the body fully received."""
        return self.error is None and self.status_code in SUCCESS_STATUS_CODES

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        """Decode the body as JSON.

        Raises:
            ValueError: If the body is not valid JSON
        """
        return json.loads(self.body)

    def get_header(self, name: str) -> str | None:
        """Return the value of the first header line matching ``name``."""
        prefix = name.lower() + ":"
        for line in self.headers:
            if line.lower().startswith(prefix):
                return line[len(prefix) :].strip()
        return None


class HttpRequest:
    """Configuration for a single HTTP transaction.

    A request is built once per call and handed to an HttpExecutor. It holds
    no network resources of its own.
    """

    def __init__(self, url: str, verbose: bool = False):
        """Initialize a request.

        Args:
            url: Target URL
            verbose: Stream a wire trace to the ``pytfs.http.wire`` logger
        """
        self.url = url
        self.verbose = verbose
        self.user_agent = DEFAULT_USER_AGENT
        self.headers: list[tuple[str, str]] = []
        self.auth: httpx.Auth | None = None

    def add_header(self, key: str, value: str) -> None:
        """Append a header. Duplicate keys are allowed and all are sent."""
        self.headers.append((key, value))

    def set_basic_auth(self, user: str, password: str) -> None:
        """Use Basic authentication, replacing any other scheme."""
        self.auth = httpx.BasicAuth(user, password)

    def set_ntlm(self, username: str, password: str) -> None:
        """Use NTLM authentication, replacing any other scheme.

        Args:
            username: Account name, optionally as DOMAIN\\user
            password: Account password
        """
        self.auth = HttpNtlmAuth(username, password)

    def set_content(self, content_type: str) -> None:
        self.add_header("Content-Type", content_type)

    def header_list(self) -> list[tuple[str, str]]:
        """All headers to send, user agent first."""
        return [("User-Agent", self.user_agent), *self.headers]

    def exec(
        self,
        method: str,
        body: str | bytes | None = None,
        executor: HttpExecutor | None = None,
    ) -> HttpResponse:
        """Run the request and buffer the response body.

        Args:
            method: HTTP method (GET sends no body)
            body: Optional request body for non-GET methods
            executor: Executor to run on (default: the shared instance)

        Returns:
            The HttpResponse; never raises for network or HTTP errors
        """
        executor = executor or HttpExecutor.default_instance()
        return executor.execute(self, method, body)

    def get_file_fp(
        self, fp: BinaryIO, executor: HttpExecutor | None = None
    ) -> HttpResponse:
        """Stream a GET of this URL into an open binary file, following redirects."""
        executor = executor or HttpExecutor.default_instance()
        return executor.execute(self, "GET", sink=fp, follow_redirects=True)

    def get_file(
        self, path: str | Path, executor: HttpExecutor | None = None
    ) -> bool:
        """Download this URL to ``path``.

        The file is removed again when the download does not succeed.

        Args:
            path: Destination file path
            executor: Executor to run on (default: the shared instance)

        Returns:
            True if the server answered 200/201 and the body was written
        """
        path = Path(path)
        try:
            with open(path, "wb") as fp:
                response = self.get_file_fp(fp, executor)
        except OSError as e:
            logger.error(f"Cannot write {path}: {e}")
            return False

        if not response.ok:
            logger.error(
                f"Download of {self.url} failed with status {response.status_code}"
            )
            path.unlink(missing_ok=True)
            return False
        return True


class HttpExecutor:
    """Drives HTTP transactions to completion over a shared async client."""

    _default: HttpExecutor | None = None

    def __init__(
        self,
        verify: bool = True,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize an executor.

        Args:
            verify: Verify TLS certificates. Disabling this accepts any
                certificate, which is only meant for self-signed internal
                servers.
            timeout: Network timeout in seconds (None waits forever)
            transport: Optional httpx transport (used by tests)
        """
        self.verify = verify
        self.timeout = timeout
        self._transport = transport
        self._loop = asyncio.new_event_loop()
        self._client: httpx.AsyncClient | None = None
        self._active: HttpRequest | None = None

        if not verify:
            logger.warning("TLS certificate verification is disabled")

    @classmethod
    def default_instance(cls) -> HttpExecutor:
        """Return the process-wide executor, creating it on first use."""
        if cls._default is None or cls._default.is_closed:
            cls._default = cls()
            atexit.register(cls._default.close)
        return cls._default

    @property
    def is_closed(self) -> bool:
        return self._loop.is_closed()

    @property
    def busy(self) -> bool:
        """Whether a transaction is currently registered."""
        return self._active is not None

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the async client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                verify=self.verify,
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
                event_hooks={
                    "request": [self._trace_request],
                    "response": [self._trace_response],
                },
            )
        return self._client

    def execute(
        self,
        request: HttpRequest,
        method: str,
        body: str | bytes | None = None,
        sink: BinaryIO | None = None,
        follow_redirects: bool = False,
    ) -> HttpResponse:
        """Run one transaction and block until it finishes.

        Args:
            request: Request configuration
            method: HTTP method
            body: Request body for non-GET methods
            sink: Open binary file to stream the body into instead of
                buffering it
            follow_redirects: Follow 3xx responses

        Returns:
            HttpResponse carrying whatever status was obtained (0 when the
            transport failed)

        Raises:
            TfsTransportError: If the executor is closed or already busy
        """
        if self.is_closed:
            raise TfsTransportError("HttpExecutor is closed")
        if self._active is not None:
            raise TfsTransportError(
                "HttpExecutor already has a transaction in progress; "
                "executors cannot be shared between threads"
            )

        response = HttpResponse()
        started = time.monotonic()
        self._active = request
        task = self._loop.create_task(
            self._perform(request, method, body, response, sink, follow_redirects)
        )
        try:
            while not task.done():
                # Blocks in the selector until the transaction progresses to
                # completion or the slice runs out, never spinning.
                self._loop.run_until_complete(
                    asyncio.wait({task}, timeout=POLL_INTERVAL)
                )
        finally:
            try:
                if not task.done():
                    task.cancel()
                    self._loop.run_until_complete(asyncio.wait({task}))
            finally:
                self._active = None

        if not task.cancelled():
            task.result()

        response.elapsed = time.monotonic() - started
        logger.debug(
            f"{method} {request.url} -> {response.status_code} "
            f"({format_elapsed(response.elapsed)})"
        )
        return response

    async def _perform(
        self,
        request: HttpRequest,
        method: str,
        body: str | bytes | None,
        response: HttpResponse,
        sink: BinaryIO | None,
        follow_redirects: bool,
    ) -> None:
        client = self._get_client()
        method = method.upper()

        content: bytes | None = None
        if method != "GET":
            content = body.encode("utf-8") if isinstance(body, str) else body or b""

        extensions: dict[str, Any] = {}
        if request.verbose:
            extensions["trace"] = self._trace_event

        chunks: list[bytes] = []
        try:
            http_request = client.build_request(
                method,
                request.url,
                headers=request.header_list(),
                content=content,
                extensions=extensions,
            )
            auth = request.auth if request.auth is not None else httpx.USE_CLIENT_DEFAULT
            http_response = await client.send(
                http_request,
                auth=auth,
                stream=True,
                follow_redirects=follow_redirects,
            )
            try:
                response.status_code = http_response.status_code
                response.headers = [
                    _header_line(key, value)
                    for key, value in http_response.headers.raw
                ]
                async for chunk in http_response.aiter_bytes():
                    if request.verbose:
                        wire_logger.info("<: %s", _printable(chunk))
                    if sink is not None:
                        sink.write(chunk)
                    else:
                        chunks.append(chunk)
            finally:
                await http_response.aclose()
        except (httpx.HTTPError, httpx.InvalidURL, OSError) as e:
            # Status 0 marks any transport failure, including a truncated body
            response.status_code = 0
            response.error = str(e) or type(e).__name__
            logger.warning(f"Failure performing request: {response.error}")

        response.body = b"".join(chunks)

    # =========================
    # Wire trace
    # =========================

    async def _trace_request(self, request: httpx.Request) -> None:
        if self._active is None or not self._active.verbose:
            return
        target = request.url.raw_path.decode("ascii", errors="replace")
        wire_logger.info("H>: %s %s HTTP/1.1", request.method, target)
        for key, value in request.headers.raw:
            wire_logger.info("H>: %s", _header_line(key, value))
        try:
            content = request.content
        except httpx.RequestNotRead:
            return
        if content:
            wire_logger.info(">: %s", _printable(content))

    async def _trace_response(self, response: httpx.Response) -> None:
        if self._active is None or not self._active.verbose:
            return
        wire_logger.info(
            "H<: %s %d %s",
            response.http_version,
            response.status_code,
            response.reason_phrase,
        )
        for key, value in response.headers.raw:
            wire_logger.info("H<: %s", _header_line(key, value))

    async def _trace_event(self, event_name: str, info: dict[str, Any]) -> None:
        wire_logger.info("T: %s", event_name)

    def close(self) -> None:
        """Close the client and the event loop."""
        if self.is_closed:
            return
        if self._client is not None and not self._client.is_closed:
            self._loop.run_until_complete(self._client.aclose())
        self._client = None
        self._loop.close()

    def __enter__(self) -> HttpExecutor:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
