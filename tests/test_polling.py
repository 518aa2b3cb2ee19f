"""Tests for poll_until, JobPoller and progress normalization."""

from __future__ import annotations

import asyncio

import pytest

from conftest import no_sleep
from elevex.ingest.poller import JobPoller, normalize_progress
from elevex.ingest.polling import poll_until
from elevex.ingest.schemas import BackendJobSnapshot


class TestPollUntil:
    async def test_returns_first_terminal_snapshot(self):
        results = iter(["a", "b", "done", "never"])
        seen = []

        result = await poll_until(
            lambda: asyncio.sleep(0, next(results)),
            lambda s: s == "done",
            interval=0,
            max_attempts=10,
            on_timeout=lambda n: "timeout",
            on_progress=seen.append,
            sleep=no_sleep,
        )
        assert result == "done"
        assert seen == ["a", "b"]

    async def test_attempt_ceiling_is_exact(self):
        calls = 0

        async def fetch():
            nonlocal calls
            calls += 1
            return "pending"

        result = await poll_until(
            fetch,
            lambda s: False,
            interval=0,
            max_attempts=7,
            on_timeout=lambda n: f"gave up after {n}",
            sleep=no_sleep,
        )
        assert calls == 7
        assert result == "gave up after 7"

    async def test_fetch_errors_are_transient(self):
        outcomes = [RuntimeError("502"), ConnectionError("reset"), "done"]

        async def fetch():
            item = outcomes.pop(0)
            if isinstance(item, Exception):
                raise item
            return item

        result = await poll_until(
            fetch,
            lambda s: s == "done",
            interval=0,
            max_attempts=5,
            on_timeout=lambda n: "timeout",
            sleep=no_sleep,
        )
        assert result == "done"

    async def test_errors_count_toward_ceiling(self):
        async def fetch():
            raise RuntimeError("down")

        result = await poll_until(
            fetch,
            lambda s: True,
            interval=0,
            max_attempts=3,
            on_timeout=lambda n: n,
            sleep=no_sleep,
        )
        assert result == 3

    async def test_progress_callback_errors_are_not_retried(self):
        calls = 0

        async def fetch():
            nonlocal calls
            calls += 1
            return "pending"

        def broken_callback(snapshot):
            raise RuntimeError("tracker rejected update")

        with pytest.raises(RuntimeError, match="tracker rejected update"):
            await poll_until(
                fetch,
                lambda s: False,
                interval=0,
                max_attempts=5,
                on_timeout=lambda n: "timeout",
                on_progress=broken_callback,
                sleep=no_sleep,
            )
        assert calls == 1

    async def test_last_attempt_still_reported(self):
        seen = []
        await poll_until(
            lambda: asyncio.sleep(0, "pending"),
            lambda s: False,
            interval=0,
            max_attempts=3,
            on_timeout=lambda n: None,
            on_progress=seen.append,
            sleep=no_sleep,
        )
        assert seen == ["pending"] * 3

    async def test_waits_interval_between_attempts(self):
        sleeps = []

        async def record_sleep(seconds):
            sleeps.append(seconds)

        results = iter(["x", "x", "done"])
        await poll_until(
            lambda: asyncio.sleep(0, next(results)),
            lambda s: s == "done",
            interval=1.5,
            max_attempts=10,
            on_timeout=lambda n: None,
            sleep=record_sleep,
        )
        assert sleeps == [1.5, 1.5]

    async def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            await poll_until(
                lambda: asyncio.sleep(0, "x"),
                lambda s: True,
                interval=0,
                max_attempts=0,
                on_timeout=lambda n: None,
            )


class TestNormalizeProgress:
    @pytest.mark.parametrize(
        "status,expected",
        [("extracting", 10), ("embedding", 30), ("saving", 95), ("done", 100)],
    )
    def test_stage_map(self, status, expected):
        assert normalize_progress(BackendJobSnapshot(status=status)) == expected

    def test_explicit_progress_wins(self):
        snapshot = BackendJobSnapshot(status="embedding", progress=47)
        assert normalize_progress(snapshot) == 47

    def test_clamped_and_rounded(self):
        assert normalize_progress(BackendJobSnapshot(status="embedding", progress=150)) == 100
        assert normalize_progress(BackendJobSnapshot(status="embedding", progress=-3)) == 0
        assert normalize_progress(BackendJobSnapshot(status="embedding", progress=46.6)) == 47

    def test_unknown_stage(self):
        assert normalize_progress(BackendJobSnapshot(status="queued")) is None


class TestJobPoller:
    async def test_reports_progress_and_returns_done(self, client, ingest_config, fake_server):
        fake_server.jobs["t1"] = [
            {"status": "extracting"},
            {"status": "embedding", "progress": 47},
            {"status": "done", "pages": 12, "chunks": 80},
        ]
        seen = []
        poller = JobPoller(client, ingest_config, sleep=no_sleep)

        result = await poller.poll("t1", seen.append)

        assert result.status == "done"
        assert result.pages == 12
        assert [s.status for s in seen] == ["extracting", "embedding"]

    async def test_not_found_becomes_error(self, client, ingest_config, fake_server):
        fake_server.jobs["gone"] = [{"status": "not_found"}]
        poller = JobPoller(client, ingest_config, sleep=no_sleep)

        result = await poller.poll("gone", lambda s: None)

        assert result.status == "error"
        assert result.message == "Job gone not found (it may have expired)"

    async def test_timeout_snapshot(self, client, ingest_config, fake_server):
        ingest_config.poll_interval_seconds = 1
        ingest_config.poll_max_attempts = 600
        fake_server.jobs["slow"] = [{"status": "embedding"}]
        poller = JobPoller(client, ingest_config, sleep=no_sleep)

        result = await poller.poll("slow", lambda s: None)

        assert result.status == "error"
        assert result.message == "Timeout: processing took longer than 10 minutes"
        assert fake_server.status_calls("slow") == 600

    async def test_server_errors_are_retried(self, client, ingest_config, fake_server):
        fake_server.jobs["flaky"] = [500, 503, {"status": "done"}]
        poller = JobPoller(client, ingest_config, sleep=no_sleep)

        result = await poller.poll("flaky", lambda s: None)

        assert result.status == "done"
        assert fake_server.status_calls("flaky") == 3
