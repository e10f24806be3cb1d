"""Tests for callback delivery."""

import json
from unittest import TestCase

import httpx

from deltas.dispatcher.callback import CallbackClient, DispatchResult
from deltas.dispatcher.config import EngineConfig
from deltas.origin_filter import OriginFilter
from deltas.rules import CallbackConfig, Rule
from deltas.tests.factories import addition, make_rule


class RecordingHandler:
    """httpx.MockTransport handler returning queued responses."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        outcome = self.outcomes.pop(0) if self.outcomes else 200
        if isinstance(outcome, Exception):
            raise outcome
        return httpx.Response(outcome)


class TestCallbackClient(TestCase):
    """Tests for CallbackClient.deliver."""

    def setUp(self):
        self.sleeps: list[float] = []
        self.origin_filter = OriginFilter(retention_ms=60_000, max_entries=100)
        self.config = EngineConfig(retry_attempts=2, retry_backoff_ms=(100, 400))

    def _client(self, handler, config=None) -> CallbackClient:
        return CallbackClient(
            config=config or self.config,
            origin_filter=self.origin_filter,
            transport=httpx.MockTransport(handler),
            sleep=self.sleeps.append,
            marker_factory=lambda: "marker-1",
        )

    def test_success_posts_payload_with_origin_header(self):
        handler = RecordingHandler(204)
        rule = make_rule()
        result = self._client(handler).deliver(rule, [addition("s1", "p1", "o1")])

        self.assertTrue(result.success)
        self.assertEqual(result.status_code, 204)
        self.assertEqual(result.attempts, 1)
        self.assertEqual(result.origin, "marker-1")

        request = handler.requests[0]
        self.assertEqual(request.method, "POST")
        self.assertEqual(str(request.url), "http://resource/.mu/delta")
        self.assertEqual(request.headers["mu-call-id"], "marker-1")
        body = json.loads(request.content)
        self.assertEqual(body["resourceFormat"], "v0.0.1")
        self.assertEqual(body["changes"][0]["changeType"], "addition")
        self.assertEqual(self.sleeps, [])

    def test_origin_marker_recorded_for_self_filtering(self):
        self._client(RecordingHandler(200)).deliver(make_rule(), [addition("s", "p", "o")])
        self.assertTrue(self.origin_filter.is_self_origin("marker-1"))

    def test_retries_with_increasing_backoff_then_succeeds(self):
        handler = RecordingHandler(503, httpx.ConnectError("refused"), 200)
        with self.assertLogs("deltas.dispatcher.callback", level="WARNING"):
            result = self._client(handler).deliver(make_rule(), [addition("s", "p", "o")])

        self.assertTrue(result.success)
        self.assertEqual(result.attempts, 3)
        self.assertEqual(self.sleeps, [0.1, 0.4])
        self.assertEqual(len(handler.requests), 3)
        # Retries reuse the same marker
        self.assertEqual({r.headers["mu-call-id"] for r in handler.requests}, {"marker-1"})

    def test_gives_up_after_bounded_attempts(self):
        handler = RecordingHandler(500, 500, 500, 500)
        with self.assertLogs("deltas.dispatcher.callback", level="ERROR"):
            result = self._client(handler).deliver(make_rule(), [addition("s", "p", "o")])

        self.assertFalse(result.success)
        self.assertEqual(result.error_code, "HTTP_500")
        self.assertEqual(result.attempts, 3)
        self.assertEqual(len(handler.requests), 3)

    def test_timeout_is_reported(self):
        handler = RecordingHandler(httpx.ReadTimeout("slow"))
        config = EngineConfig(retry_attempts=0)
        with self.assertLogs("deltas.dispatcher.callback", level="ERROR"):
            result = self._client(handler, config).deliver(make_rule(), [addition("s", "p", "o")])
        self.assertFalse(result.success)
        self.assertEqual(result.error_code, "TIMEOUT")

    def test_exhausted_result_reports_attempts_and_origin(self):
        handler = RecordingHandler(httpx.ConnectError("refused"), 502)
        config = EngineConfig(retry_attempts=1, retry_backoff_ms=(100,))
        with self.assertLogs("deltas.dispatcher.callback", level="WARNING") as logs:
            result = self._client(handler, config).deliver(make_rule(), [addition("s", "p", "o")])

        self.assertFalse(result.success)
        self.assertEqual(result.attempts, 2)
        self.assertEqual(result.error_code, "HTTP_502")
        self.assertEqual(result.origin, "marker-1")
        self.assertEqual(self.sleeps, [0.1])
        self.assertTrue(any("after 2 failed attempt(s)" in line for line in logs.output))

    def test_single_attempt_without_retries(self):
        handler = RecordingHandler(500)
        config = EngineConfig(retry_attempts=0)
        with self.assertLogs("deltas.dispatcher.callback", level="ERROR"):
            result = self._client(handler, config).deliver(make_rule(), [addition("s", "p", "o")])

        self.assertEqual(result.attempts, 1)
        self.assertEqual(len(handler.requests), 1)
        self.assertEqual(self.sleeps, [])

    def test_rule_retry_options_override_config(self):
        handler = RecordingHandler(500, 500, 200)
        rule = make_rule(retry=5, retryTimeout=50)
        client = self._client(handler)
        with self.assertLogs("deltas.dispatcher.callback", level="WARNING"):
            result = client.deliver(rule, [addition("s", "p", "o")])

        self.assertTrue(result.success)
        self.assertEqual(client.max_attempts(rule), 6)
        self.assertEqual(self.sleeps, [0.05, 0.1])

    def test_backoff_schedule_repeats_last_step(self):
        client = self._client(RecordingHandler())
        rule = make_rule()
        self.assertEqual(
            [client.backoff_ms(rule, n) for n in range(0, 5)],
            [0, 100, 400, 400, 400],
        )

    def test_method_from_rule(self):
        handler = RecordingHandler(200)
        base = make_rule()
        rule = Rule(
            name=base.name,
            match=base.match,
            callback=CallbackConfig(url="http://hook.example.com/d", method="PUT"),
            options=base.options,
        )
        self._client(handler).deliver(rule, [addition("s", "p", "o")])
        self.assertEqual(handler.requests[0].method, "PUT")


class TestDispatchResult(TestCase):
    def test_constructors(self):
        ok = DispatchResult.ok("fine", attempts=2)
        self.assertTrue(ok.success)
        self.assertIsNone(ok.error_code)
        err = DispatchResult.error("bad", code="TIMEOUT")
        self.assertFalse(err.success)
        self.assertEqual(err.error_code, "TIMEOUT")
