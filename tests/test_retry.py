"""Test bounded retry and transient-error classification."""

from unittest import IsolatedAsyncioTestCase, TestCase

import httpx

from autosend.errors import (
    EmptySourceError,
    OperationFailedError,
    RecoverableError,
    RetryExhaustedError,
)
from autosend.retry import RetryExecutor

from fakes import SleepRecorder


class Flaky:
    def __init__(self, errors, result="ok"):
        self.errors = list(errors)
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


class TestClassification(TestCase):
    def setUp(self):
        self.retry = RetryExecutor(3, 1.0)

    def test_transient_messages(self):
        for msg in ["Rate limit reached", "compute units capacity exceeded", "429 Too Many Requests"]:
            with self.subTest(msg=msg):
                self.assertTrue(self.retry.is_transient(RuntimeError(msg)))

    def test_other_messages(self):
        for msg in ["insufficient funds for gas * price + value", "nonce too low", ""]:
            with self.subTest(msg=msg):
                self.assertFalse(self.retry.is_transient(RuntimeError(msg)))

    def test_http_429_is_transient(self):
        request = httpx.Request("POST", "http://rpc.invalid")
        err = httpx.HTTPStatusError("boom", request=request, response=httpx.Response(429, request=request))
        self.assertTrue(self.retry.is_transient(err))

    def test_custom_signatures(self):
        retry = RetryExecutor(3, 1.0, transient_signatures=["Upstream Busy"])
        self.assertTrue(retry.is_transient(RuntimeError("upstream busy, try later")))
        self.assertFalse(retry.is_transient(RuntimeError("rate limit")))

    def test_needs_one_attempt(self):
        with self.assertRaises(ValueError):
            RetryExecutor(0, 1.0)


class TestRetryExecutor(IsolatedAsyncioTestCase):
    async def test_success_first_try(self):
        sleep = SleepRecorder()
        op = Flaky([])
        self.assertEqual(await RetryExecutor(5, 10.0, sleep=sleep).run(op), "ok")
        self.assertEqual(op.calls, 1)
        self.assertEqual(sleep.calls, [])

    async def test_transient_then_success(self):
        sleep = SleepRecorder()
        op = Flaky([RuntimeError("rate limit"), RuntimeError("rate limit")])
        self.assertEqual(await RetryExecutor(5, 10.0, sleep=sleep).run(op), "ok")
        self.assertEqual(op.calls, 3)
        self.assertEqual(sleep.calls, [10.0, 10.0])

    async def test_always_transient_exhausts_all_attempts(self):
        sleep = SleepRecorder()
        op = Flaky([RuntimeError("too many requests")] * 10)
        with self.assertRaises(RetryExhaustedError) as cm:
            await RetryExecutor(5, 10.0, sleep=sleep).run(op, label="submit")
        self.assertEqual(op.calls, 5)
        self.assertEqual(sleep.calls, [10.0] * 4)
        self.assertEqual(cm.exception.attempts, 5)
        self.assertIsInstance(cm.exception, RecoverableError)
        self.assertIn("submit", str(cm.exception))
        self.assertIn("too many requests", str(cm.exception))

    async def test_non_transient_aborts_after_one_try(self):
        sleep = SleepRecorder()
        op = Flaky([ValueError("insufficient funds")] * 10)
        with self.assertRaises(OperationFailedError) as cm:
            await RetryExecutor(5, 10.0, sleep=sleep).run(op)
        self.assertEqual(op.calls, 1)
        self.assertEqual(sleep.calls, [])
        self.assertEqual(cm.exception.attempts, 1)
        self.assertIsInstance(cm.exception.last_error, ValueError)

    async def test_non_transient_after_transient(self):
        op = Flaky([RuntimeError("rate limit"), KeyError("boom")])
        with self.assertRaises(OperationFailedError) as cm:
            await RetryExecutor(5, 0.0, sleep=SleepRecorder()).run(op)
        self.assertEqual(op.calls, 2)
        self.assertEqual(cm.exception.attempts, 2)

    async def test_fatal_passes_through(self):
        op = Flaky([EmptySourceError("gone")])
        with self.assertRaises(EmptySourceError):
            await RetryExecutor(5, 0.0, sleep=SleepRecorder()).run(op)
        self.assertEqual(op.calls, 1)

    async def test_per_call_attempt_override(self):
        op = Flaky([RuntimeError("rate limit")] * 10)
        with self.assertRaises(RetryExhaustedError):
            await RetryExecutor(5, 0.0, sleep=SleepRecorder()).run(op, max_attempts=2)
        self.assertEqual(op.calls, 2)

    async def test_explicit_zero_attempts_is_rejected(self):
        op = Flaky([])
        with self.assertRaises(ValueError):
            await RetryExecutor(5, 0.0, sleep=SleepRecorder()).run(op, max_attempts=0)
        self.assertEqual(op.calls, 0)
