"""Tests for benchhost.host.channel — executor message routing."""

from __future__ import annotations

import asyncio
import threading
import unittest

from benchhost.errors import RemoteError, SuiteCaseError
from benchhost.host.channel import MessageChannel, deserialize_error, serialize_error

from host_test_helpers import make_logger


class TestErrorSerialization(unittest.TestCase):
    def test_remote_error(self) -> None:
        error = deserialize_error({"name": "TypeError", "message": "bad", "stack": "trace"})
        self.assertIsInstance(error, RemoteError)
        self.assertEqual(str(error), "TypeError: bad")
        self.assertEqual(error.stack, "trace")

    def test_params_make_suite_case_error(self) -> None:
        error = deserialize_error({"name": "ValueError", "message": "x", "params": "size=1"})
        self.assertIsInstance(error, SuiteCaseError)
        assert isinstance(error, SuiteCaseError)
        self.assertEqual(error.param_str, "size=1")
        self.assertEqual(str(error.cause), "ValueError: x")

    def test_cause_chain(self) -> None:
        error = deserialize_error({"name": "A", "message": "a", "cause": {"name": "B", "message": "b"}})
        self.assertEqual(str(error.__cause__), "B: b")

    def test_non_mapping(self) -> None:
        self.assertEqual(str(deserialize_error("boom")), "Error: boom")

    def test_serialize_round_trip_keeps_params(self) -> None:
        case_error = SuiteCaseError("size=1", KeyError("k"))
        data = serialize_error(case_error)
        self.assertEqual(data["name"], "KeyError")
        self.assertEqual(data["params"], "size=1")
        rebuilt = deserialize_error(data)
        assert isinstance(rebuilt, SuiteCaseError)
        self.assertEqual(rebuilt.cause.name, "KeyError")


class TestMessageChannel(unittest.TestCase):
    def run_channel(self, *messages, level="debug"):
        """Dispatch *messages* and return the settled result future."""

        async def go():
            channel = MessageChannel(self.logger, level)
            for message in messages:
                channel.dispatch(message)
            await asyncio.sleep(0)
            return channel.result

        return asyncio.run(go())

    def setUp(self) -> None:
        self.logger = make_logger("benchhost.test.channel")

    def test_list_resolves(self) -> None:
        result = self.run_channel([{"scenes": []}])
        self.assertEqual(result.result(), [{"scenes": []}])

    def test_first_settlement_wins(self) -> None:
        with self.assertLogs(self.logger, "WARNING"):
            result = self.run_channel([1], [2])
        self.assertEqual(result.result(), [1])

    def test_error_after_result_is_ignored(self) -> None:
        result = self.run_channel([1], ValueError("late"))
        self.assertEqual(result.result(), [1])

    def test_exception_rejects(self) -> None:
        result = self.run_channel(ValueError("boom"))
        self.assertIsInstance(result.exception(), ValueError)

    def test_error_message_rejects(self) -> None:
        result = self.run_channel({"e": {"name": "Error", "message": "x", "params": "a=1"}})
        self.assertIsInstance(result.exception(), SuiteCaseError)

    def test_log_message(self) -> None:
        with self.assertLogs(self.logger, "INFO") as logs:
            result = self.run_channel({"level": "info", "log": "hello"})
        self.assertFalse(result.done())
        self.assertEqual(logs.records[0].getMessage(), "hello")

    def test_log_messages_below_level_are_dropped(self) -> None:
        messages = [{"level": name, "log": name} for name in ("debug", "info", "warn", "error")]
        with self.assertLogs(self.logger, "DEBUG") as logs:
            self.run_channel(*messages, level="warn")
        self.assertEqual([r.getMessage() for r in logs.records], ["warn", "error"])
        self.assertEqual(logs.records[0].levelname, "WARNING")

    def test_unknown_message_is_warned(self) -> None:
        with self.assertLogs(self.logger, "WARNING") as logs:
            self.run_channel({"what": 1})
        self.assertIn("unknown message", logs.output[0])

    def test_dispatch_from_other_thread(self) -> None:
        async def go():
            channel = MessageChannel(self.logger)
            thread = threading.Thread(target=channel.dispatch, args=([42],))
            thread.start()
            records = await channel.result
            thread.join()
            return records

        self.assertEqual(asyncio.run(go()), [42])

    def test_context_copies_files(self) -> None:
        async def go():
            channel = MessageChannel(self.logger)
            files = ["a.py"]
            ctx = channel.context("tmp", "", files, "root")
            files.append("b.py")
            ctx.dispatch([1])
            return ctx

        ctx = asyncio.run(go())
        self.assertEqual(ctx.files, ["a.py"])
        self.assertEqual(ctx.result.result(), [1])


if __name__ == "__main__":
    unittest.main()
