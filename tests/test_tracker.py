#!/usr/bin/env python3
"""
Tests for the tracker: buffering, flush transaction, conditional flush
and the opt-out gate.

Run with: python3 -m pytest tests/test_tracker.py -v
"""

import os
import sys
import tempfile
import time
import unittest
from datetime import timedelta
from pathlib import Path
from unittest.mock import patch

scripts_dir = str(Path(__file__).parent.parent / "scripts")
if scripts_dir not in sys.path:
    sys.path.insert(0, scripts_dir)

from cli_analytics import Config, Event, FlushDecision, Tracker, TrackerState
from cli_analytics.errors import TransmissionError

HOUR = timedelta(hours=1)


class RecordingClient:
    """In-memory collector recording each submitted batch."""

    def __init__(self, recorder, fail_submit=False, fail_finalize=False):
        self.recorder = recorder
        self.fail_submit = fail_submit
        self.fail_finalize = fail_finalize

    def submit_batch(self, records):
        if self.fail_submit:
            raise TransmissionError("collector unreachable")
        self.recorder.batches.append(list(records))

    def finalize(self):
        if self.fail_finalize:
            raise TransmissionError("upload failed")
        self.recorder.finalized += 1

    def discard(self):
        self.recorder.discarded += 1


class Recorder:
    def __init__(self, **options):
        self.batches = []
        self.finalized = 0
        self.discarded = 0
        self.write_keys = []
        self.options = options

    def __call__(self, write_key):
        self.write_keys.append(write_key)
        return RecordingClient(self, **self.options)


class TrackerTestCase(unittest.TestCase):
    """Runs each test against an isolated home directory."""

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.home = Path(self.temp_dir.name)
        self.root = self.home / ".myapp"
        self.env = patch.dict(os.environ, {"HOME": str(self.home)})
        self.env.start()
        self.trackers = []

    def tearDown(self):
        for tracker in self.trackers:
            tracker.close()
        self.env.stop()
        self.temp_dir.cleanup()

    def make_tracker(self, recorder=None, dir=".myapp"):
        tracker = Tracker(Config(
            write_key="test-key",
            dir=dir,
            client_factory=recorder or Recorder(),
        ))
        self.trackers.append(tracker)
        return tracker

    def age_marker(self, seconds):
        past = time.time() - seconds
        os.utime(self.root / "last_flush", (past, past))


class TestInitialization(TrackerTestCase):

    def test_creates_state(self):
        tracker = self.make_tracker()

        self.assertIs(tracker.state, TrackerState.ACTIVE)
        self.assertTrue((self.root / "id").exists())
        self.assertTrue((self.root / "events").exists())
        self.assertTrue((self.root / "last_flush").exists())
        self.assertEqual(tracker.user_id, (self.root / "id").read_text())

    def test_identity_stable_across_trackers(self):
        first = self.make_tracker()
        first.close()
        second = self.make_tracker()

        self.assertTrue(first.user_id)
        self.assertEqual(first.user_id, second.user_id)

    def test_missing_home_is_inert(self):
        """An unresolvable home directory disables tracking silently."""
        with patch("pathlib.Path.home", side_effect=RuntimeError("no home")):
            tracker = self.make_tracker()

        self.assertIs(tracker.state, TrackerState.INERT)
        tracker.track("a")
        tracker.flush()
        tracker.close()
        self.assertEqual(tracker.events(), [])
        self.assertEqual(tracker.size(), 0)
        self.assertFalse(tracker.enabled())
        self.assertGreater(tracker.last_flush_duration(), timedelta(days=365))
        with self.assertRaises(FileNotFoundError):
            tracker.last_flush()

    def test_uncreatable_directory_is_inert(self):
        (self.home / "blocker").write_text("")

        tracker = self.make_tracker(dir="blocker/.myapp")

        self.assertIs(tracker.state, TrackerState.INERT)
        self.assertIsNone(tracker.root)
        tracker.track("a")

    def test_unopenable_log_is_inert(self):
        (self.root / "events").mkdir(parents=True)

        tracker = self.make_tracker()

        self.assertIs(tracker.state, TrackerState.INERT)
        tracker.track("a")
        self.assertFalse(tracker.active)

    def test_missing_write_key_rejected(self):
        with self.assertRaises(ValueError):
            Config(write_key="", dir=".myapp")
        with self.assertRaises(ValueError):
            Config(write_key="key", dir="")

    def test_default_logger(self):
        config = Config(write_key="key", dir=".myapp")

        self.assertEqual(config.log.name, "cli_analytics")


class TestTrack(TrackerTestCase):

    def test_round_trip(self):
        """Tracked events read back exactly and in order."""
        tracker = self.make_tracker()

        tracker.track("Something")
        tracker.track("More Something", {"other": "stuff", "whatever": "else here"})
        tracker.track("Numbers", {"n": 1, "ratio": 0.5, "ok": True, "tags": ["a", "b"]})

        self.assertEqual(tracker.events(), [
            Event("Something"),
            Event("More Something", {"other": "stuff", "whatever": "else here"}),
            Event("Numbers", {"n": 1, "ratio": 0.5, "ok": True, "tags": ["a", "b"]}),
        ])
        self.assertEqual(tracker.size(), 3)

    def test_track_does_not_transmit(self):
        recorder = Recorder()
        tracker = self.make_tracker(recorder)

        tracker.track("a")

        self.assertEqual(recorder.write_keys, [])

    def test_events_survive_restart(self):
        tracker = self.make_tracker()
        tracker.track("a")
        tracker.close()

        tracker = self.make_tracker()
        tracker.track("b")

        self.assertEqual([e.name for e in tracker.events()], ["a", "b"])

    def test_track_after_close_is_noop(self):
        tracker = self.make_tracker()
        tracker.track("a")
        tracker.close()
        tracker.track("b")

        self.assertEqual(tracker.size(), 1)

    def test_close_is_idempotent(self):
        tracker = self.make_tracker()

        tracker.close()
        tracker.close()

    def test_context_manager_closes(self):
        with self.make_tracker() as tracker:
            tracker.track("a")

        tracker.track("b")
        self.assertEqual(tracker.size(), 1)


class TestFlush(TrackerTestCase):

    def test_flush_sends_batch_and_clears(self):
        recorder = Recorder()
        tracker = self.make_tracker(recorder)
        tracker.track("a")
        tracker.track("b", {"x": 1})

        tracker.flush()

        self.assertEqual(recorder.write_keys, ["test-key"])
        self.assertEqual(len(recorder.batches), 1)
        self.assertEqual(
            [(r.name, r.user_id, r.properties) for r in recorder.batches[0]],
            [("a", tracker.user_id, None), ("b", tracker.user_id, {"x": 1})],
        )
        self.assertEqual(recorder.finalized, 1)
        self.assertEqual(recorder.discarded, 0)
        self.assertFalse((self.root / "events").exists())

    def test_flush_empties_log(self):
        tracker = self.make_tracker()
        tracker.track("a")

        tracker.flush()

        self.assertEqual(tracker.size(), 0)
        self.assertEqual(tracker.events(), [])

    def test_second_flush_is_noop(self):
        recorder = Recorder()
        tracker = self.make_tracker(recorder)
        tracker.track("a")

        tracker.flush()
        tracker.flush()

        self.assertEqual(len(recorder.batches), 1)

    def test_missing_open_log_raises(self):
        """The log disappearing under an open tracker is an error."""
        tracker = self.make_tracker()
        (self.root / "events").unlink()

        with self.assertRaises(FileNotFoundError):
            tracker.size()

    def test_flush_updates_marker(self):
        tracker = self.make_tracker()
        tracker.track("a")
        self.age_marker(3600)
        before = tracker.last_flush_duration()

        tracker.flush()

        self.assertLess(tracker.last_flush_duration(), before)

    def test_empty_flush_skips_client(self):
        recorder = Recorder()
        tracker = self.make_tracker(recorder)
        self.age_marker(3600)

        tracker.flush()

        self.assertEqual(recorder.write_keys, [])
        self.assertLess(tracker.last_flush_duration(), timedelta(minutes=1))
        self.assertFalse((self.root / "events").exists())

    def test_submit_failure_keeps_log(self):
        """Failed transmission leaves events for the next flush."""
        tracker = self.make_tracker(Recorder(fail_submit=True))
        tracker.track("a")
        tracker.track("b")
        self.age_marker(3600)

        with self.assertRaises(TransmissionError):
            tracker.flush()

        self.assertEqual(tracker.config.client_factory.discarded, 1)
        self.assertTrue((self.root / "events").exists())
        self.assertGreaterEqual(tracker.last_flush_duration(), HOUR)

        recorder = Recorder()
        tracker = self.make_tracker(recorder)
        tracker.track("c")
        tracker.flush()

        self.assertEqual([r.name for r in recorder.batches[0]], ["a", "b", "c"])

    def test_finalize_failure_keeps_log(self):
        tracker = self.make_tracker(Recorder(fail_finalize=True))
        tracker.track("a")

        with self.assertRaises(TransmissionError):
            tracker.flush()

        self.assertEqual(tracker.config.client_factory.discarded, 1)
        self.assertEqual(tracker.events(), [Event("a")])

    def test_corrupt_log_aborts_flush(self):
        recorder = Recorder()
        tracker = self.make_tracker(recorder)
        tracker.track("a")
        with open(self.root / "events", "a") as f:
            f.write("not json\n")

        with self.assertRaises(ValueError):
            tracker.flush()

        self.assertEqual(recorder.write_keys, [])
        self.assertTrue((self.root / "events").exists())

    def test_marker_failure_keeps_log(self):
        """The log is deleted only after the marker is updated."""
        tracker = self.make_tracker()
        tracker.track("a")

        with patch("cli_analytics.tracker.identity.touch", side_effect=PermissionError("denied")):
            with self.assertRaises(PermissionError):
                tracker.flush()

        self.assertTrue((self.root / "events").exists())


class TestConditionalFlush(TrackerTestCase):

    def test_scenario(self):
        """Two events with a size threshold of two flush in one batch."""
        recorder = Recorder()
        tracker = self.make_tracker(recorder)
        tracker.track("a", None)
        tracker.track("b", {"x": 1})

        decision = tracker.conditional_flush(2, HOUR)

        self.assertIs(decision, FlushDecision.FLUSH_SIZE)
        self.assertEqual(len(recorder.batches), 1)
        batch = recorder.batches[0]
        self.assertEqual([r.name for r in batch], ["a", "b"])
        self.assertEqual(batch[1].properties, {"x": 1})
        self.assertFalse((self.root / "events").exists())
        self.assertEqual(tracker.size(), 0)

    def test_size_precedence(self):
        recorder = Recorder()
        tracker = self.make_tracker(recorder)
        for i in range(3):
            tracker.track(f"e{i}")

        decision = tracker.conditional_flush(3, timedelta(days=1))

        self.assertIs(decision, FlushDecision.FLUSH_SIZE)
        self.assertEqual(len(recorder.batches), 1)

    def test_age_threshold(self):
        recorder = Recorder()
        tracker = self.make_tracker(recorder)
        tracker.track("a")
        self.age_marker(2 * 3600)

        decision = tracker.conditional_flush(10, HOUR)

        self.assertIs(decision, FlushDecision.FLUSH_AGE)
        self.assertEqual(len(recorder.batches), 1)

    def test_neither_threshold_closes(self):
        recorder = Recorder()
        tracker = self.make_tracker(recorder)
        tracker.track("a")

        decision = tracker.conditional_flush(10, HOUR)

        self.assertIs(decision, FlushDecision.CLOSE)
        self.assertEqual(recorder.write_keys, [])
        self.assertEqual(tracker.events(), [Event("a")])
        tracker.track("b")
        self.assertEqual(tracker.size(), 1)

    def test_size_failure_aborts(self):
        recorder = Recorder()
        tracker = self.make_tracker(recorder)
        (self.root / "events").write_text("{broken\n")

        with self.assertRaises(ValueError):
            tracker.conditional_flush(1, HOUR)

        self.assertEqual(recorder.write_keys, [])
        self.assertTrue((self.root / "events").exists())


class TestOptOut(TrackerTestCase):

    def test_disabled_tracker_is_noop(self):
        """Opted-out trackers neither buffer nor transmit."""
        self.make_tracker().disable()
        recorder = Recorder()
        tracker = self.make_tracker(recorder)

        self.assertIs(tracker.state, TrackerState.DISABLED)
        self.assertFalse(tracker.enabled())

        events_before = (self.root / "events").read_text()
        for i in range(5):
            tracker.track(f"e{i}")
        tracker.flush()
        tracker.conditional_flush(0, timedelta(0))

        self.assertEqual((self.root / "events").read_text(), events_before)
        self.assertEqual(recorder.write_keys, [])

    def test_disabled_fresh_install_creates_no_log(self):
        self.root.mkdir()
        (self.root / "disable").write_text("")

        tracker = self.make_tracker()
        tracker.track("a")

        self.assertFalse((self.root / "events").exists())
        self.assertEqual(tracker.user_id, "")

    def test_toggle_does_not_affect_live_tracker(self):
        tracker = self.make_tracker()

        tracker.disable()
        tracker.track("a")

        self.assertIs(tracker.state, TrackerState.ACTIVE)
        self.assertEqual(tracker.size(), 1)

    def test_enable_reactivates_new_trackers(self):
        tracker = self.make_tracker()
        tracker.disable()
        tracker.enable()

        self.assertTrue(tracker.enabled())
        self.assertIs(self.make_tracker().state, TrackerState.ACTIVE)

    def test_enable_when_not_disabled_raises(self):
        tracker = self.make_tracker()

        with self.assertRaises(FileNotFoundError):
            tracker.enable()


if __name__ == "__main__":
    unittest.main()
