from __future__ import annotations

import unittest

from council.progress import ProgressEvent, ProgressLog


class ProgressLogTests(unittest.TestCase):
    def setUp(self):
        self.log = ProgressLog()

    def test_append_keeps_order(self):
        self.log.append("first")
        self.log.append("second")

        self.assertEqual(self.log.entries, ["first", "second"])

    def test_entries_is_a_copy(self):
        self.log.append("line")
        self.log.entries.append("tampered")

        self.assertEqual(self.log.entries, ["line"])

    def test_advance_is_monotonic(self):
        self.log.advance(30)
        with self.assertRaises(ValueError):
            self.log.advance(10)
        self.assertEqual(self.log.percent, 30)

    def test_advance_clamps_to_100(self):
        self.log.advance(140)
        self.assertEqual(self.log.percent, 100)

    def test_clear_resets_entries_and_percent(self):
        self.log.append("line")
        self.log.advance(50)

        self.log.clear()

        self.assertEqual(self.log.snapshot(), ([], 0.0))

    def test_observers_see_events_until_unsubscribed(self):
        seen: list[ProgressEvent] = []
        unsubscribe = self.log.subscribe(seen.append)

        self.log.append("hello")
        self.log.advance(5)
        self.log.advance(5)  # unchanged, no event
        unsubscribe()
        self.log.append("after")

        self.assertEqual([e.kind for e in seen], ["log", "progress"])
        self.assertEqual(seen[0].message, "hello")
        self.assertEqual(seen[1].percent, 5)

    def test_failing_observer_does_not_break_writer(self):
        def broken(_event):
            raise RuntimeError("boom")

        seen = []
        self.log.subscribe(broken)
        self.log.subscribe(seen.append)

        with self.assertLogs("council.progress", level="ERROR"):
            self.log.append("still written")

        self.assertEqual(self.log.entries, ["still written"])
        self.assertEqual(len(seen), 1)

    def test_lines_go_to_progress_logger(self):
        with self.assertLogs("council.progress", level="INFO") as captured:
            self.log.append("RESEARCH: Scanning digital footprint...")

        self.assertIn("RESEARCH: Scanning digital footprint...", captured.output[0])


if __name__ == "__main__":
    unittest.main()
