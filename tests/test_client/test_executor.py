"""Tests for the RequestExecutor: retry, backoff, classification, cancellation."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from conftest import RecordingSleep, ScriptedTransport, connect_error, json_response
from cachedfetch.cancellation import CancellationToken
from cachedfetch.client.executor import RequestExecutor
from cachedfetch.client.transport import TransportResponse
from cachedfetch.exceptions import (
    CancelledError,
    RemoteError,
    TransportError,
    ValidationError,
)
from cachedfetch.models import RequestConfig, RequestSpec
from cachedfetch.output import OutputManager, set_output


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _spec(**kwargs) -> RequestSpec:
    kwargs.setdefault("base_url", "https://api.example.com")
    kwargs.setdefault("path", "/test")
    return RequestSpec(**kwargs)


def _executor(
    transport: ScriptedTransport,
    sleeps: RecordingSleep,
    **config,
) -> RequestExecutor:
    return RequestExecutor(transport, RequestConfig(**config), sleep=sleeps)


def _run(coro):
    return asyncio.run(coro)


# ---------------------------------------------------------------------------
# Success
# ---------------------------------------------------------------------------


class TestSuccess:
    def test_makes_successful_request(self, sleeps: RecordingSleep) -> None:
        transport = ScriptedTransport([json_response({"id": 1, "name": "Test"})])
        result = _run(_executor(transport, sleeps).execute(_spec()))

        assert result.ok
        assert result.value == {"id": 1, "name": "Test"}
        assert result.status_code == 200
        assert transport.calls[0]["method"] == "GET"
        assert transport.calls[0]["url"] == "https://api.example.com/test"
        assert transport.calls[0]["headers"] == {"content-type": "application/json"}

    @pytest.mark.parametrize("max_attempts", [1, 3, 10])
    def test_success_short_circuits(self, sleeps: RecordingSleep, max_attempts: int) -> None:
        transport = ScriptedTransport([json_response({"ok": True})])
        result = _run(_executor(transport, sleeps).execute(_spec(), max_attempts))

        assert result.ok
        assert result.attempts == 1
        assert len(transport.calls) == 1
        assert sleeps.delays == []

    def test_text_body_is_returned_as_string(self, sleeps: RecordingSleep) -> None:
        transport = ScriptedTransport([TransportResponse(200, b"plain text")])
        result = _run(_executor(transport, sleeps).execute(_spec()))
        assert result.value == "plain text"

    def test_empty_body_decodes_to_none(self, sleeps: RecordingSleep) -> None:
        transport = ScriptedTransport([TransportResponse(204, b"")])
        result = _run(_executor(transport, sleeps).execute(_spec(method="DELETE")))
        assert result.ok
        assert result.value is None

    def test_json_body_and_params_are_sent(self, sleeps: RecordingSleep) -> None:
        transport = ScriptedTransport([json_response({"id": "456"}, status_code=201)])
        spec = _spec(method="post", body={"name": "Jane"}, params={"notify": "yes"})
        result = _run(_executor(transport, sleeps).execute(spec))

        assert result.ok
        call = transport.calls[0]
        assert call["method"] == "POST"
        assert call["body"] == b'{"name": "Jane"}'
        assert call["params"] == {"notify": "yes"}

    def test_uses_spec_timeout_over_config(self, sleeps: RecordingSleep) -> None:
        transport = ScriptedTransport([json_response({})])
        _run(_executor(transport, sleeps, timeout=30).execute(_spec(timeout=2.5)))
        assert transport.calls[0]["timeout"] == 2.5


# ---------------------------------------------------------------------------
# Retry and backoff
# ---------------------------------------------------------------------------


class TestRetry:
    def test_retries_on_network_failure(self, sleeps: RecordingSleep) -> None:
        transport = ScriptedTransport(
            [connect_error(), connect_error(), json_response({"success": True})]
        )
        result = _run(_executor(transport, sleeps).execute(_spec()))

        assert result.ok
        assert result.value == {"success": True}
        assert result.attempts == 3
        assert len(transport.calls) == 3

    @pytest.mark.parametrize("attempts", [1, 2, 5])
    def test_exhaustion_performs_exactly_n_attempts(
        self, sleeps: RecordingSleep, attempts: int
    ) -> None:
        transport = ScriptedTransport([connect_error()])
        result = _run(_executor(transport, sleeps).execute(_spec(), attempts))

        assert not result.ok
        assert isinstance(result.error, TransportError)
        assert len(transport.calls) == attempts
        assert result.attempts == attempts

    def test_backoff_doubles_and_skips_after_last(self, sleeps: RecordingSleep) -> None:
        transport = ScriptedTransport([connect_error()])
        _run(_executor(transport, sleeps).execute(_spec(), 4))
        assert sleeps.delays == [1.0, 2.0, 4.0]

    def test_backoff_scales_with_base_delay(self, sleeps: RecordingSleep) -> None:
        transport = ScriptedTransport([connect_error()])
        _run(_executor(transport, sleeps, base_delay=0.25).execute(_spec(), 3))
        assert sleeps.delays == [0.25, 0.5]

    def test_single_attempt_never_sleeps(self, sleeps: RecordingSleep) -> None:
        transport = ScriptedTransport([connect_error()])
        result = _run(_executor(transport, sleeps).execute(_spec(), 1))
        assert isinstance(result.error, TransportError)
        assert sleeps.delays == []

    def test_returns_error_of_last_attempt(self, sleeps: RecordingSleep) -> None:
        transport = ScriptedTransport(
            [
                connect_error("first"),
                json_response({"message": "overloaded"}, status_code=503),
                json_response({"message": "still broken"}, status_code=502),
            ]
        )
        result = _run(_executor(transport, sleeps).execute(_spec(), 3))

        assert isinstance(result.error, RemoteError)
        assert result.error.status == 502
        assert str(result.error) == "HTTP 502: still broken"

    def test_attempt_budget_falls_back_to_spec_then_config(self, sleeps: RecordingSleep) -> None:
        transport = ScriptedTransport([connect_error()])
        _run(_executor(transport, sleeps, max_attempts=5).execute(_spec(max_attempts=2)))
        assert len(transport.calls) == 2

        transport = ScriptedTransport([connect_error()])
        _run(_executor(transport, sleeps, max_attempts=4).execute(_spec()))
        assert len(transport.calls) == 4

    def test_retry_is_reported_in_verbose_mode(
        self, sleeps: RecordingSleep, capsys: pytest.CaptureFixture[str]
    ) -> None:
        set_output(OutputManager(no_color=True, verbose=True))
        transport = ScriptedTransport([connect_error(), json_response({})])
        _run(_executor(transport, sleeps).execute(_spec()))

        err = capsys.readouterr().err
        assert "retrying in 1.0s (attempt 1/3)" in err


# ---------------------------------------------------------------------------
# Error classification
# ---------------------------------------------------------------------------


class TestClassification:
    def test_http_error_becomes_remote_error(self, sleeps: RecordingSleep) -> None:
        transport = ScriptedTransport([TransportResponse(404, b"")])
        result = _run(_executor(transport, sleeps).execute(_spec(path="/nonexistent"), 1))

        assert isinstance(result.error, RemoteError)
        assert result.error.status == 404
        assert str(result.error) == "HTTP 404: Not Found"
        assert result.error.exit_code == 4

    def test_remote_errors_are_retried_by_default(self, sleeps: RecordingSleep) -> None:
        transport = ScriptedTransport([TransportResponse(400, b"")])
        _run(_executor(transport, sleeps).execute(_spec(), 3))
        assert len(transport.calls) == 3

    def test_client_errors_terminal_when_policy_disabled(self, sleeps: RecordingSleep) -> None:
        transport = ScriptedTransport([TransportResponse(400, b"")])
        result = _run(
            _executor(transport, sleeps, retry_client_errors=False).execute(_spec(), 3)
        )
        assert result.error.status == 400
        assert len(transport.calls) == 1
        assert sleeps.delays == []

    @pytest.mark.parametrize("status", [408, 429, 500, 503])
    def test_transient_statuses_retried_when_policy_disabled(
        self, sleeps: RecordingSleep, status: int
    ) -> None:
        transport = ScriptedTransport([TransportResponse(status, b"")])
        _run(_executor(transport, sleeps, retry_client_errors=False).execute(_spec(), 2))
        assert len(transport.calls) == 2

    def test_timeout_becomes_transport_error(self, sleeps: RecordingSleep) -> None:
        transport = ScriptedTransport([json_response({})], delay=5)
        result = _run(_executor(transport, sleeps, timeout=0.01).execute(_spec(), 1))

        assert isinstance(result.error, TransportError)
        assert "timed out" in str(result.error)
        assert result.error.exit_code == 6

    def test_os_error_becomes_transport_error(self, sleeps: RecordingSleep) -> None:
        cause = OSError("network unreachable")
        transport = ScriptedTransport([cause])
        result = _run(_executor(transport, sleeps).execute(_spec(), 1))
        assert isinstance(result.error, TransportError)
        assert result.error.cause is cause

    def test_unwrap_raises_carried_error(self, sleeps: RecordingSleep) -> None:
        transport = ScriptedTransport([TransportResponse(500, b"")])
        result = _run(_executor(transport, sleeps).execute(_spec(), 1))
        with pytest.raises(RemoteError, match="HTTP 500"):
            result.unwrap()


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestValidation:
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"base_url": ""},
            {"base_url": "api.example.com"},
            {"base_url": "ftp://api.example.com"},
            {"method": "BREW"},
            {"timeout": 0},
        ],
    )
    def test_invalid_spec_never_attempts(self, sleeps: RecordingSleep, kwargs: dict) -> None:
        transport = ScriptedTransport([json_response({})])
        result = _run(_executor(transport, sleeps).execute(_spec(**kwargs)))

        assert isinstance(result.error, ValidationError)
        assert result.attempts == 0
        assert transport.calls == []

    def test_zero_attempts_is_invalid(self, sleeps: RecordingSleep) -> None:
        transport = ScriptedTransport([json_response({})])
        result = _run(_executor(transport, sleeps).execute(_spec(), 0))
        assert isinstance(result.error, ValidationError)
        assert transport.calls == []

    def test_unencodable_body_is_invalid(self, sleeps: RecordingSleep) -> None:
        transport = ScriptedTransport([json_response({})])
        result = _run(
            _executor(transport, sleeps).execute(_spec(method="POST", body={1, 2}))
        )

        assert isinstance(result.error, ValidationError)
        assert "not JSON-serialisable" in str(result.error)
        assert result.attempts == 0
        assert transport.calls == []


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


class TestCancellation:
    def test_pre_cancelled_token_sends_nothing(self, sleeps: RecordingSleep) -> None:
        async def scenario():
            token = CancellationToken()
            token.cancel()
            transport = ScriptedTransport([json_response({})])
            result = await _executor(transport, sleeps).execute(_spec(), cancel=token)
            return result, transport

        result, transport = _run(scenario())
        assert isinstance(result.error, CancelledError)
        assert result.attempts == 0
        assert transport.calls == []

    def test_deadline_aborts_in_flight_attempt(self, sleeps: RecordingSleep) -> None:
        async def scenario():
            transport = ScriptedTransport([json_response({})], delay=5)
            token = CancellationToken(timeout=0.01)
            return await _executor(transport, sleeps).execute(_spec(), cancel=token)

        result = _run(scenario())
        assert isinstance(result.error, CancelledError)
        assert not isinstance(result.error, TransportError)
        assert "Deadline" in str(result.error)
        assert result.error.exit_code == 130

    def test_cancel_during_backoff_skips_remaining_attempts(self) -> None:
        async def scenario():
            token = CancellationToken()

            async def cancelling_sleep(delay: float) -> None:
                token.cancel("stop")
                await asyncio.sleep(3600)

            transport = ScriptedTransport([connect_error()])
            executor = RequestExecutor(transport, RequestConfig(), sleep=cancelling_sleep)
            result = await executor.execute(_spec(), 5, cancel=token)
            return result, transport

        result, transport = _run(scenario())
        assert isinstance(result.error, CancelledError)
        assert str(result.error) == "stop"
        assert len(transport.calls) == 1

    def test_token_unused_when_request_succeeds(self, sleeps: RecordingSleep) -> None:
        async def scenario():
            token = CancellationToken()
            transport = ScriptedTransport([json_response({"ok": 1})])
            result = await _executor(transport, sleeps).execute(_spec(), cancel=token)
            return result, token

        result, token = _run(scenario())
        assert result.ok
        assert not token.cancelled


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------


class TestConcurrency:
    def test_backoff_does_not_block_other_calls(self) -> None:
        async def scenario():
            failing = ScriptedTransport([connect_error(), json_response({"slow": True})])
            healthy = ScriptedTransport([json_response({"fast": True})])
            config = RequestConfig(base_delay=0.05)
            slow = RequestExecutor(failing, config)
            fast = RequestExecutor(healthy, config)

            slow_task = asyncio.ensure_future(slow.execute(_spec()))
            await asyncio.sleep(0.01)
            fast_result = await fast.execute(_spec())
            assert not slow_task.done()
            return fast_result, await slow_task

        fast_result, slow_result = _run(scenario())
        assert fast_result.value == {"fast": True}
        assert slow_result.value == {"slow": True}


def test_httpx_timeout_is_transport_error(sleeps: RecordingSleep) -> None:
    exc = httpx.ReadTimeout("read timed out", request=httpx.Request("GET", "https://x"))
    transport = ScriptedTransport([exc])
    result = _run(_executor(transport, sleeps).execute(_spec(), 1))
    assert isinstance(result.error, TransportError)
    assert "timed out" in str(result.error)
