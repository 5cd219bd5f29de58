#!/usr/bin/env python3
"""
Test suite for the conversation session stores.

Covers bounded history, idle expiry, context rendering, statistics and the
Redis-backed store (against an in-memory fake client).

USAGE:
    Run from project root: python -m pytest tests/test_session.py -v
"""

import json
import threading
import time
import unittest

from tienda_chat.app.session import ASSISTANT, USER, RedisSessionStore, SessionStore


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakePipeline:
    """Reads go straight to the client; writes are queued until commit."""

    def __init__(self, client):
        self.client = client
        self.queued = []

    def get(self, key):
        return self.client.data.get(key)

    def multi(self):
        pass

    def set(self, key, value, ex=None):
        self.queued.append((key, value, ex))


class FakeRedis:
    """Just enough of redis.Redis for RedisSessionStore, including WATCH retries."""

    def __init__(self):
        self.data = {}
        self.ttls = {}
        self.versions = {}
        self.closed = False
        self.retries = 0
        self.before_commit = None

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value, ex=None):
        self.data[key] = value
        self.ttls[key] = ex
        self.versions[key] = self.versions.get(key, 0) + 1

    def delete(self, key):
        self.versions[key] = self.versions.get(key, 0) + 1
        return 1 if self.data.pop(key, None) is not None else 0

    def transaction(self, func, *watches):
        while True:
            seen = {key: self.versions.get(key, 0) for key in watches}
            pipe = FakePipeline(self)
            func(pipe)
            hook, self.before_commit = self.before_commit, None
            if hook:
                hook()
            if any(self.versions.get(key, 0) != version for key, version in seen.items()):
                self.retries += 1
                continue
            for key, value, ex in pipe.queued:
                self.set(key, value, ex)
            return

    def scan_iter(self, match=None):
        prefix = match.rstrip("*") if match else ""
        return iter([k for k in self.data if k.startswith(prefix)])

    def close(self):
        self.closed = True


class TestSessionStore(unittest.TestCase):

    def setUp(self):
        self.clock = FakeClock()
        self.store = SessionStore(max_turns=4, max_age=60, sweep_interval=1, context_turns=3, clock=self.clock)

    def test_history_keeps_most_recent_turns_in_order(self):
        for i in range(7):
            self.store.append("u1", USER, f"msg{i}")

        history = self.store.history("u1")
        self.assertEqual([t.content for t in history], ["msg3", "msg4", "msg5", "msg6"])

    def test_unknown_session_has_empty_history(self):
        self.assertEqual(self.store.history("nobody"), [])
        self.assertEqual(self.store.format_context("nobody"), "")

    def test_expired_session_is_removed_on_read(self):
        self.store.append("u1", USER, "hola")
        self.clock.advance(61)

        self.assertEqual(self.store.history("u1"), [])
        self.assertEqual(self.store.stats()["totalSessions"], 0)
        # second read is still empty and does not fail
        self.assertEqual(self.store.history("u1"), [])

    def test_session_at_exactly_max_age_is_still_live(self):
        self.store.append("u1", USER, "hola")
        self.clock.advance(60)
        self.assertEqual(len(self.store.history("u1")), 1)

    def test_append_refreshes_activity(self):
        self.store.append("u1", USER, "hola")
        self.clock.advance(50)
        self.store.append("u1", ASSISTANT, "buenas")
        self.clock.advance(50)
        self.assertEqual(len(self.store.history("u1")), 2)

    def test_append_after_expiry_starts_a_new_session(self):
        self.store.append("u1", USER, "old")
        self.clock.advance(120)
        self.store.append("u1", USER, "new")
        self.assertEqual([t.content for t in self.store.history("u1")], ["new"])

    def test_format_context_labels_and_limit(self):
        self.store.append("u1", USER, "¿Tienen leche?")
        self.store.append("u1", ASSISTANT, "Sí, en el pasillo 3.")
        self.store.append("u1", USER, "¿Y pan?")
        self.store.append("u1", ASSISTANT, "En panadería.")

        context = self.store.format_context("u1")
        self.assertEqual(
            context,
            "Assistant: Sí, en el pasillo 3.\nCustomer: ¿Y pan?\nAssistant: En panadería.",
        )
        self.assertEqual(self.store.format_context("u1", limit=1), "Assistant: En panadería.")

    def test_unknown_role_is_rejected(self):
        with self.assertRaises(ValueError):
            self.store.append("u1", "system", "x")

    def test_clear_session(self):
        self.store.append("u1", USER, "hola")
        self.assertTrue(self.store.clear("u1"))
        self.assertFalse(self.store.clear("u1"))
        self.assertFalse(self.store.clear("never-existed"))

    def test_stats_for_two_sessions(self):
        store = SessionStore(max_turns=20, max_age=60, clock=self.clock)
        for i in range(4):
            store.append("a", USER, f"a{i}")
        for i in range(6):
            store.append("b", USER, f"b{i}")

        self.assertEqual(store.stats(), {
            "activeSessions": 2,
            "totalSessions": 2,
            "totalMessages": 10,
            "averageMessagesPerSession": 5,
        })

    def test_stats_average_rounds_half_up(self):
        store = SessionStore(max_turns=20, max_age=60, clock=self.clock)
        for i in range(2):
            store.append("a", USER, f"a{i}")
        for i in range(3):
            store.append("b", USER, f"b{i}")
        self.assertEqual(store.stats()["averageMessagesPerSession"], 3)

    def test_stats_when_empty(self):
        self.assertEqual(self.store.stats()["averageMessagesPerSession"], 0)

    def test_sweep_removes_only_expired_sessions(self):
        self.store.append("old", USER, "x")
        self.clock.advance(40)
        self.store.append("fresh", USER, "y")
        self.clock.advance(30)

        self.assertEqual(self.store.sweep(), 1)
        self.assertEqual(self.store.history("old"), [])
        self.assertEqual(len(self.store.history("fresh")), 1)
        self.assertEqual(self.store.sweep(), 0)

    def test_concurrent_appends_to_one_session_are_all_kept(self):
        store = SessionStore(max_turns=1000, max_age=60)

        def worker(n):
            for i in range(50):
                store.append("shared", USER, f"{n}-{i}")

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(len(store.history("shared")), 200)

    def test_start_and_stop(self):
        self.store.append("u1", USER, "hola")
        self.store.start()
        self.store.start()  # second start is a no-op
        self.store.stop()
        self.assertEqual(self.store.stats()["totalSessions"], 0)

    def test_background_sweeper_removes_expired_sessions(self):
        store = SessionStore(max_age=10, sweep_interval=0.05, clock=self.clock)
        store.append("old", USER, "hola")
        store.start()
        try:
            self.clock.advance(11)
            deadline = time.monotonic() + 2
            while store.stats()["totalSessions"] and time.monotonic() < deadline:
                time.sleep(0.02)
            self.assertEqual(store.stats()["totalSessions"], 0)
        finally:
            store.stop()

    def test_format_context_with_zero_limit_is_empty(self):
        self.store.append("u1", USER, "hola")
        self.assertEqual(self.store.format_context("u1", limit=0), "")


class TestRedisSessionStore(unittest.TestCase):

    def setUp(self):
        self.clock = FakeClock()
        self.client = FakeRedis()
        self.store = RedisSessionStore(self.client, max_turns=3, max_age=60, context_turns=10, clock=self.clock)

    def test_append_stores_json_with_ttl(self):
        self.store.append("u1", USER, "hola")

        self.assertIn("session:u1", self.client.data)
        self.assertEqual(self.client.ttls["session:u1"], 60)
        data = json.loads(self.client.data["session:u1"])
        self.assertEqual(data["turns"][0]["content"], "hola")

    def test_history_is_bounded(self):
        for i in range(5):
            self.store.append("u1", USER, f"m{i}")
        self.assertEqual([t.content for t in self.store.history("u1")], ["m2", "m3", "m4"])

    def test_expired_document_is_dropped(self):
        self.store.append("u1", USER, "hola")
        self.clock.advance(61)
        self.assertEqual(self.store.history("u1"), [])
        self.assertNotIn("session:u1", self.client.data)

    def test_format_context_and_clear(self):
        self.store.append("u1", USER, "hola")
        self.store.append("u1", ASSISTANT, "buenas")
        self.assertEqual(self.store.format_context("u1"), "Customer: hola\nAssistant: buenas")
        self.assertTrue(self.store.clear("u1"))
        self.assertFalse(self.store.clear("u1"))

    def test_stats(self):
        self.store.append("a", USER, "1")
        self.store.append("a", USER, "2")
        self.store.append("b", USER, "3")
        stats = self.store.stats()
        self.assertEqual(stats["activeSessions"], 2)
        self.assertEqual(stats["totalMessages"], 3)
        self.assertEqual(stats["averageMessagesPerSession"], 2)

    def test_format_context_with_zero_limit_is_empty(self):
        self.store.append("u1", USER, "hola")
        self.assertEqual(self.store.format_context("u1", limit=0), "")

    def test_concurrent_write_is_retried_not_lost(self):
        self.store.append("u1", USER, "first")
        # another request writes the same session between our read and commit
        self.client.before_commit = lambda: self.store.append("u1", ASSISTANT, "concurrent")

        self.store.append("u1", USER, "mine")

        self.assertEqual(self.client.retries, 1)
        self.assertEqual([t.content for t in self.store.history("u1")], ["first", "concurrent", "mine"])

    def test_stop_closes_client(self):
        self.store.stop()
        self.assertTrue(self.client.closed)


if __name__ == '__main__':
    unittest.main()
