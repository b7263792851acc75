"""Unit tests for the HTTP transaction engine."""

import asyncio
import logging
from unittest.mock import Mock

import httpx
import pytest
from httpx_ntlm import HttpNtlmAuth

from pytfs.exceptions import TfsTransportError
from pytfs.http import (
    DEFAULT_USER_AGENT,
    HttpExecutor,
    HttpRequest,
    HttpResponse,
)

URL = "https://tfs.test/tfs/Coll/_apis/tfvc/items"


class TestHttpRequest:
    """Tests for request configuration."""

    def test_init_defaults(self):
        """Test a new request carries the default user agent."""
        req = HttpRequest(URL)
        assert req.url == URL
        assert req.verbose is False
        assert req.auth is None
        assert req.header_list() == [("User-Agent", DEFAULT_USER_AGENT)]

    def test_add_header_keeps_duplicates(self):
        """Test that duplicate header keys are all kept in order."""
        req = HttpRequest(URL)
        req.add_header("X-Test", "a")
        req.add_header("X-Test", "b")
        assert req.header_list()[1:] == [("X-Test", "a"), ("X-Test", "b")]

    def test_set_content(self):
        """Test that set_content appends a Content-Type header."""
        req = HttpRequest(URL)
        req.set_content("application/json")
        assert ("Content-Type", "application/json") in req.header_list()

    def test_set_ntlm(self):
        """Test NTLM credentials."""
        req = HttpRequest(URL)
        req.set_ntlm("DOMAIN\\user", "secret")
        assert isinstance(req.auth, HttpNtlmAuth)

    def test_auth_schemes_are_exclusive(self):
        """Test that setting one auth scheme replaces the other."""
        req = HttpRequest(URL)
        req.set_ntlm("user", "secret")
        req.set_basic_auth("user", "secret")
        assert isinstance(req.auth, httpx.BasicAuth)

        req.set_ntlm("user", "secret")
        assert isinstance(req.auth, HttpNtlmAuth)


class TestHttpResponse:
    """Tests for the response container."""

    @pytest.mark.parametrize("status,expected", [(200, True), (201, True),
                                                 (204, False), (302, False),
                                                 (403, False), (0, False)])
    def test_ok_only_for_200_and_201(self, status, expected):
        """Test which status codes count as success."""
        assert HttpResponse(status_code=status).ok is expected

    def test_not_ok_after_transport_error(self):
        """Test that a transport error overrides a success status."""
        assert HttpResponse(status_code=200, error="connection reset").ok is False

    def test_get_header_case_insensitive(self):
        """Test header lookup by name."""
        resp = HttpResponse(headers=["Content-Type: application/json", "X-A: 1"])
        assert resp.get_header("content-type") == "application/json"
        assert resp.get_header("X-Missing") is None

    def test_json_and_text(self):
        """Test body decoding helpers."""
        resp = HttpResponse(body=b'{"count": 1}')
        assert resp.json() == {"count": 1}
        assert resp.text == '{"count": 1}'

    def test_json_invalid_raises_value_error(self):
        """Test that invalid JSON raises ValueError."""
        with pytest.raises(ValueError):
            HttpResponse(body=b"<html>").json()


class TestHttpExecutor:
    """Tests for executing transactions."""

    def test_get_returns_status_body_and_headers(self, make_executor):
        """Test a simple GET transaction."""
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["content"] = request.content
            seen["user_agent"] = request.headers.get("User-Agent")
            return httpx.Response(200, content=b"hello", headers={"X-A": "1"})

        executor = make_executor(handler)
        resp = HttpRequest(URL).exec("GET", None, executor)

        assert resp.status_code == 200
        assert resp.ok
        assert resp.body == b"hello"
        assert "X-A: 1" in resp.headers
        assert resp.error is None
        assert resp.elapsed >= 0
        assert seen == {"method": "GET", "content": b"", "user_agent": DEFAULT_USER_AGENT}

    def test_get_ignores_body(self, make_executor):
        """Test that GET never sends a body."""
        seen = {}

        def handler(request):
            seen["content"] = request.content
            return httpx.Response(200)

        executor = make_executor(handler)
        HttpRequest(URL).exec("GET", "ignored", executor)
        assert seen["content"] == b""

    def test_duplicate_headers_are_sent(self, make_executor):
        """Test that every duplicate header reaches the server."""
        seen = {}

        def handler(request):
            seen["values"] = request.headers.get_list("X-Test")
            return httpx.Response(200)

        executor = make_executor(handler)
        req = HttpRequest(URL)
        req.add_header("X-Test", "a")
        req.add_header("X-Test", "b")
        req.exec("GET", None, executor)

        assert seen["values"] == ["a", "b"]

    def test_post_sends_body_and_length(self, make_executor):
        """Test that POST attaches the body and its length."""
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["content"] = request.content
            seen["length"] = request.headers.get("Content-Length")
            return httpx.Response(201, json={"id": 1})

        executor = make_executor(handler)
        resp = HttpRequest(URL).exec("POST", '{"a": 1}', executor)

        assert resp.status_code == 201
        assert resp.json() == {"id": 1}
        assert seen == {"method": "POST", "content": b'{"a": 1}', "length": "8"}

    def test_post_without_body(self, make_executor):
        """Test that a POST without body sends an empty one."""
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["length"] = request.headers.get("Content-Length")
            return httpx.Response(204)

        executor = make_executor(handler)
        resp = HttpRequest(URL).exec("post", None, executor)

        assert resp.status_code == 204
        assert not resp.ok
        assert seen == {"method": "POST", "length": "0"}

    def test_error_status_does_not_raise(self, make_executor):
        """Test that HTTP errors are returned, not raised."""
        executor = make_executor(lambda request: httpx.Response(500, text="boom"))
        resp = HttpRequest(URL).exec("GET", None, executor)

        assert resp.status_code == 500
        assert resp.text == "boom"
        assert not resp.ok

    def test_redirects_not_followed_for_exec(self, make_executor):
        """Test that plain requests report redirects as-is."""
        executor = make_executor(
            lambda request: httpx.Response(302, headers={"Location": "https://tfs.test/x"})
        )
        resp = HttpRequest(URL).exec("GET", None, executor)

        assert resp.status_code == 302
        assert resp.get_header("Location") == "https://tfs.test/x"

    def test_transport_failure_returns_status_zero(self, make_executor, caplog):
        """Test that connection errors are logged and reported with status 0."""

        def handler(request):
            raise httpx.ConnectError("Connection refused", request=request)

        executor = make_executor(handler)
        with caplog.at_level(logging.WARNING, logger="pytfs.http"):
            resp = HttpRequest(URL).exec("GET", None, executor)

        assert resp.status_code == 0
        assert resp.error == "Connection refused"
        assert resp.body == b""
        assert any("Failure performing request" in r.getMessage() for r in caplog.records)

    def test_executor_reused_across_transactions(self, make_executor):
        """Test that one executor runs several transactions in sequence."""
        calls = []

        def handler(request):
            calls.append(request.url.path)
            return httpx.Response(200, text=str(len(calls)))

        executor = make_executor(handler)
        first = HttpRequest("https://tfs.test/a").exec("GET", None, executor)
        second = HttpRequest("https://tfs.test/b").exec("GET", None, executor)

        assert (first.text, second.text) == ("1", "2")
        assert calls == ["/a", "/b"]
        assert not executor.busy

    def test_concurrent_registration_raises(self, make_executor):
        """Test that a second transaction on a busy executor is rejected."""
        holder = {}

        def handler(request):
            HttpRequest("https://tfs.test/nested").exec("GET", None, holder["executor"])
            return httpx.Response(200)

        holder["executor"] = make_executor(handler)
        with pytest.raises(TfsTransportError, match="already has a transaction"):
            HttpRequest(URL).exec("GET", None, holder["executor"])
        assert not holder["executor"].busy

    def test_closed_executor_raises(self):
        """Test that a closed executor cannot run transactions."""
        executor = HttpExecutor(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        executor.close()

        assert executor.is_closed
        with pytest.raises(TfsTransportError, match="closed"):
            HttpRequest(URL).exec("GET", None, executor)

    def test_running_loop_leaves_executor_usable(self, make_executor):
        """Test that a failed wait inside a running event loop clears the busy flag."""
        executor = make_executor(lambda request: httpx.Response(200, text="ok"))

        async def call_from_loop():
            HttpRequest(URL).exec("GET", None, executor)

        with pytest.raises(RuntimeError):
            asyncio.run(call_from_loop())

        assert not executor.busy
        assert HttpRequest(URL).exec("GET", None, executor).text == "ok"

    def test_close_is_idempotent(self):
        """Test that closing twice is harmless."""
        with HttpExecutor() as executor:
            pass
        executor.close()
        assert executor.is_closed

    def test_default_instance_is_shared(self):
        """Test that the default executor is created once."""
        assert HttpExecutor.default_instance() is HttpExecutor.default_instance()

    def test_insecure_executor_logs_warning(self, caplog):
        """Test that disabling TLS verification is reported."""
        with caplog.at_level(logging.WARNING, logger="pytfs.http"):
            executor = HttpExecutor(verify=False)
        executor.close()
        assert "TLS certificate verification is disabled" in caplog.text


class TestWireTrace:
    """Tests for the verbose wire trace."""

    def handler(self, request):
        return httpx.Response(200, content=b"hello", headers={"X-Server": "tfs"})

    def test_verbose_request_streams_trace(self, make_executor, caplog):
        """Test that verbose requests log headers and body chunks."""
        executor = make_executor(self.handler)
        req = HttpRequest(URL, verbose=True)
        req.add_header("X-Test", "a")

        with caplog.at_level(logging.INFO, logger="pytfs.http.wire"):
            req.exec("POST", "payload", executor)

        messages = [r.getMessage() for r in caplog.records if r.name == "pytfs.http.wire"]
        assert "H>: POST /tfs/Coll/_apis/tfvc/items HTTP/1.1" in messages
        assert "H>: X-Test: a" in messages
        assert ">: payload" in messages
        assert "H<: HTTP/1.1 200 OK" in messages
        assert "H<: X-Server: tfs" in messages
        assert "<: hello" in messages
        # Outbound headers are traced before the inbound body
        assert messages.index("H>: X-Test: a") < messages.index("<: hello")

    def test_quiet_request_has_no_trace(self, make_executor, caplog):
        """Test that non-verbose requests do not log the wire."""
        executor = make_executor(self.handler)

        with caplog.at_level(logging.INFO, logger="pytfs.http.wire"):
            HttpRequest(URL).exec("GET", None, executor)

        assert not [r for r in caplog.records if r.name == "pytfs.http.wire"]


class TestFileDownload:
    """Tests for streaming downloads to disk."""

    def test_get_file_writes_body(self, make_executor, tmp_path):
        """Test downloading a file."""
        executor = make_executor(lambda request: httpx.Response(200, content=b"data"))
        target = tmp_path / "main.cs"

        assert HttpRequest(URL).get_file(target, executor) is True
        assert target.read_bytes() == b"data"

    def test_get_file_follows_redirects(self, make_executor, tmp_path):
        """Test that downloads follow redirects."""

        def handler(request):
            if request.url.path == "/old":
                return httpx.Response(302, headers={"Location": "https://tfs.test/new"})
            return httpx.Response(200, content=b"moved")

        executor = make_executor(handler)
        target = tmp_path / "file.txt"

        assert HttpRequest("https://tfs.test/old").get_file(target, executor)
        assert target.read_bytes() == b"moved"

    def test_get_file_fp_streams_into_handle(self, make_executor, tmp_path):
        """Test that the body goes to the file handle, not the response."""
        executor = make_executor(lambda request: httpx.Response(200, content=b"x" * 5000))
        target = tmp_path / "big.bin"

        with open(target, "wb") as fp:
            resp = HttpRequest(URL).get_file_fp(fp, executor)

        assert resp.status_code == 200
        assert resp.body == b""
        assert target.stat().st_size == 5000

    def test_get_file_failure_removes_file(self, make_executor, tmp_path, caplog):
        """Test that a failed download leaves no file behind."""
        executor = make_executor(lambda request: httpx.Response(404, text="missing"))
        target = tmp_path / "gone.txt"

        with caplog.at_level(logging.ERROR, logger="pytfs.http"):
            assert HttpRequest(URL).get_file(target, executor) is False

        assert not target.exists()
        assert "404" in caplog.text

    def test_get_file_unwritable_path(self, make_executor, tmp_path):
        """Test that an unwritable destination is reported as failure."""
        executor = make_executor(lambda request: httpx.Response(200, content=b"data"))
        target = tmp_path / "missing-dir" / "file.txt"

        assert HttpRequest(URL).get_file(target, executor) is False

    def test_body_cut_short_removes_file(self, make_executor, tmp_path, caplog):
        """Test that a download interrupted mid-body fails and leaves no file."""

        class BrokenStream(httpx.AsyncByteStream):
            async def __aiter__(self):
                yield b"partial"
                raise httpx.ReadError("connection reset")

        executor = make_executor(
            lambda request: httpx.Response(200, stream=BrokenStream())
        )
        target = tmp_path / "main.cs"

        with caplog.at_level(logging.WARNING, logger="pytfs.http"):
            assert HttpRequest(URL).get_file(target, executor) is False

        assert not target.exists()
        assert "connection reset" in caplog.text

    def test_sink_write_failure(self, make_executor):
        """Test that a failing sink is reported as a failed transaction."""
        executor = make_executor(lambda request: httpx.Response(200, content=b"data"))
        sink = Mock()
        sink.write.side_effect = OSError(28, "No space left on device")

        resp = HttpRequest(URL).get_file_fp(sink, executor)

        assert resp.status_code == 0
        assert not resp.ok
        assert "No space left on device" in resp.error
