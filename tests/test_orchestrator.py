from __future__ import annotations

import threading
import unittest
from unittest.mock import patch

from council.errors import (
    InputError,
    JudgePartialFailure,
    PipelineBusyError,
    RestartConfirmationRequired,
    SchemaValidationError,
    ServiceError,
)
from council.llm import _record_usage, get_usage_summary, reset_usage
from council.orchestrator import STAGE_PROGRESS, Orchestrator
from schemas.council import Asset, PipelineState, Stage
from tests.council_fixtures import (
    BRAND_PAYLOAD,
    JUDGMENT_PAYLOADS,
    REPORT_TEXT,
    make_asset,
    make_inputs,
    make_service,
)


def _titles(service) -> list[str]:
    return [c.kwargs["schema"]["title"] for c in service.generate_structured.call_args_list]


class _BlockingResearch:
    """Research call parks until released, so a run stays active."""

    def __init__(self, inner):
        self.inner = inner
        self.entered = threading.Event()
        self.release = threading.Event()
        self.generate_text = inner.generate_text

    def generate_structured(self, prompt, *, schema, **kwargs):
        if schema["title"] == "BrandProfile":
            self.entered.set()
            self.release.wait(timeout=5)
        return self.inner.generate_structured(prompt, schema=schema, **kwargs)


class OrchestratorRunTests(unittest.TestCase):
    def test_end_to_end_progress_and_final_state(self):
        orchestrator = Orchestrator(make_service())
        percents = []
        orchestrator.progress.subscribe(
            lambda e: percents.append(e.percent) if e.kind == "progress" else None
        )

        state = orchestrator.run(make_inputs(persona_count=3))

        expected = [5, 30, 50, 50 + 35 / 3, 50 + 70 / 3, 85, 100]
        self.assertEqual(len(percents), len(expected))
        for got, want in zip(percents, expected):
            self.assertAlmostEqual(got, want, places=2)

        self.assertEqual(state.stage, Stage.COMPLETE)
        self.assertEqual(state.progress_percent, 100)
        self.assertEqual(state.final_report_text, REPORT_TEXT)
        self.assertEqual(state.brand_profile.name, "Highland Coffee")
        self.assertEqual(len(state.judgments), len(state.personas))
        for persona, judgment in zip(state.personas, state.judgments):
            self.assertEqual(persona.id, judgment.persona_id)
        self.assertEqual(state.metrics.average_score, 70)
        self.assertEqual(state.errors, [])

    def test_snapshots_pair_each_stage_with_its_own_progress(self):
        orchestrator = Orchestrator(make_service())
        seen = []

        def on_event(event):
            # clear fires inside the start critical section, invisible to other threads
            if event.kind != "clear":
                snap = orchestrator.snapshot()
                seen.append((snap.stage, snap.progress_percent))

        orchestrator.progress.subscribe(on_event)
        orchestrator.run(make_inputs())

        self.assertEqual(seen[0], (Stage.RESEARCHING, 5))
        self.assertEqual(seen[-1], (Stage.COMPLETE, 100))
        for stage, percent in seen:
            if stage == Stage.COMPLETE:
                self.assertEqual(percent, 100)
                continue
            entry, exit_ = STAGE_PROGRESS[stage]
            self.assertGreaterEqual(percent, entry, stage)
            self.assertLessEqual(percent, exit_, stage)
            self.assertLess(percent, 100, stage)
        self.assertEqual(
            list(dict.fromkeys(stage for stage, _ in seen)),
            [Stage.RESEARCHING, Stage.RECRUITING_PERSONAS, Stage.JUDGING, Stage.SYNTHESIZING, Stage.COMPLETE],
        )

    def test_accepted_start_is_already_at_entry_progress(self):
        service = _BlockingResearch(make_service())
        orchestrator = Orchestrator(service)

        orchestrator.start(make_inputs())
        try:
            state = orchestrator.snapshot()
            self.assertEqual(state.stage, Stage.RESEARCHING)
            self.assertEqual(state.progress_percent, 5)
        finally:
            service.release.set()
        orchestrator.wait(timeout=10)

    def test_log_lines_tell_the_story(self):
        orchestrator = Orchestrator(make_service())

        state = orchestrator.run(make_inputs())

        log = state.log_entries
        self.assertEqual(log[0], "Initializing Creative Council...")
        self.assertIn("RESEARCH: Profile built for Highland Coffee.", log)
        self.assertIn("RECRUITMENT: Linh (Marketing executive) joined the council.", log)
        self.assertIn("JUDGE (Minh): Reviewing campaign...", log)
        self.assertIn("JUDGE (Hoa): Score 90/100.", log)
        self.assertEqual(log[-1], "SYSTEM: Process complete.")

    def test_research_without_name_fails_before_recruit(self):
        brand = {k: v for k, v in BRAND_PAYLOAD.items() if k != "name"}
        service = make_service(brand=brand)
        orchestrator = Orchestrator(service)

        with self.assertRaises(SchemaValidationError):
            orchestrator.run(make_inputs())

        state = orchestrator.snapshot()
        self.assertEqual(state.stage, Stage.FAILED)
        self.assertEqual(_titles(service), ["BrandProfile"])
        self.assertIsNone(state.brand_profile)
        self.assertEqual(len(state.errors), 1)
        self.assertTrue(state.log_entries[-1].startswith("ERROR: research"))
        self.assertEqual(state.progress_percent, 5)

    def test_partial_judge_failure_commits_no_judgments(self):
        judgments = dict(JUDGMENT_PAYLOADS)
        judgments["Linh"] = ServiceError("timeout")
        service = make_service(judgments=judgments)
        orchestrator = Orchestrator(service)

        with self.assertRaises(JudgePartialFailure):
            orchestrator.run(make_inputs())

        state = orchestrator.snapshot()
        self.assertEqual(state.stage, Stage.FAILED)
        self.assertEqual(state.judgments, [])
        self.assertIsNone(state.metrics)
        # Earlier stages stay visible
        self.assertEqual(len(state.personas), 3)
        self.assertIsNotNone(state.brand_profile)
        service.generate_text.assert_not_called()
        self.assertLess(state.progress_percent, 85)

    def test_empty_report_fails_the_run(self):
        orchestrator = Orchestrator(make_service(report=""))

        with self.assertRaises(ServiceError):
            orchestrator.run(make_inputs())

        state = orchestrator.snapshot()
        self.assertEqual(state.stage, Stage.FAILED)
        self.assertEqual(len(state.judgments), 3)
        self.assertEqual(state.final_report_text, "")
        self.assertLess(state.progress_percent, 100)

    def test_snapshot_is_a_deep_copy(self):
        orchestrator = Orchestrator(make_service())
        orchestrator.run(make_inputs())

        snap = orchestrator.snapshot()
        snap.personas.clear()
        snap.log_entries.append("tampered")

        fresh = orchestrator.snapshot()
        self.assertEqual(len(fresh.personas), 3)
        self.assertNotIn("tampered", fresh.log_entries)


class OrchestratorLifecycleTests(unittest.TestCase):
    def test_reset_after_complete_equals_initial_state(self):
        orchestrator = Orchestrator(make_service())
        orchestrator.run(make_inputs())

        orchestrator.reset()

        self.assertEqual(orchestrator.snapshot().model_dump(), PipelineState().model_dump())

    def test_restart_from_complete_requires_confirmation(self):
        service = make_service()
        orchestrator = Orchestrator(service)
        orchestrator.run(make_inputs())
        calls_before = service.generate_structured.call_count

        with self.assertRaises(RestartConfirmationRequired):
            orchestrator.run(make_inputs())

        state = orchestrator.snapshot()
        self.assertEqual(state.stage, Stage.COMPLETE)
        self.assertEqual(state.final_report_text, REPORT_TEXT)
        self.assertEqual(service.generate_structured.call_count, calls_before)

        state = orchestrator.run(make_inputs(market="Japan"), confirm_restart=True)
        self.assertEqual(state.stage, Stage.COMPLETE)
        self.assertIn("Market: Japan", state.log_entries)
        self.assertEqual(state.log_entries.count("Initializing Creative Council..."), 1)

    def test_rejected_restart_keeps_usage(self):
        orchestrator = Orchestrator(make_service())
        orchestrator.run(make_inputs())
        _record_usage("synthesis", "gemini-2.5-pro", 1000, 200)
        self.addCleanup(reset_usage)

        with self.assertRaises(RestartConfirmationRequired):
            orchestrator.run(make_inputs())
        self.assertEqual(get_usage_summary()["calls"], 1)

        orchestrator.run(make_inputs(), confirm_restart=True)
        self.assertEqual(get_usage_summary()["calls"], 0)

    def test_start_is_allowed_after_failure(self):
        service = make_service(report="")
        orchestrator = Orchestrator(service)
        with self.assertRaises(ServiceError):
            orchestrator.run(make_inputs())

        service.generate_text.side_effect = lambda prompt, *, stage=None: REPORT_TEXT
        state = orchestrator.run(make_inputs())

        self.assertEqual(state.stage, Stage.COMPLETE)
        self.assertEqual(state.errors, [])

    def test_background_start_and_wait(self):
        orchestrator = Orchestrator(make_service())

        orchestrator.start(make_inputs())
        state = orchestrator.wait(timeout=10)

        self.assertEqual(state.stage, Stage.COMPLETE)
        self.assertEqual(state.progress_percent, 100)

    def test_busy_while_running(self):
        service = _BlockingResearch(make_service())
        orchestrator = Orchestrator(service)

        orchestrator.start(make_inputs())
        self.assertTrue(service.entered.wait(timeout=5))
        try:
            self.assertEqual(orchestrator.stage, Stage.RESEARCHING)
            with self.assertRaises(PipelineBusyError):
                orchestrator.start(make_inputs())
            with self.assertRaises(PipelineBusyError):
                orchestrator.reset()
        finally:
            service.release.set()

        self.assertEqual(orchestrator.wait(timeout=10).stage, Stage.COMPLETE)

    def test_background_crash_is_recorded_and_logged(self):
        service = make_service(brand=RuntimeError("socket exploded"))
        orchestrator = Orchestrator(service)

        with self.assertLogs("council.orchestrator", level="ERROR") as captured:
            orchestrator.start(make_inputs())
            state = orchestrator.wait(timeout=10)

        self.assertEqual(state.stage, Stage.FAILED)
        self.assertEqual(state.errors, ["socket exploded"])
        self.assertTrue(any("crashed" in line for line in captured.output))


class OrchestratorInputTests(unittest.TestCase):
    def setUp(self):
        self.service = make_service()
        self.orchestrator = Orchestrator(self.service)

    def _assert_rejected(self, inputs):
        with self.assertRaises(InputError):
            self.orchestrator.start(inputs)
        self.assertEqual(self.orchestrator.snapshot().model_dump(), PipelineState().model_dump())
        self.service.generate_structured.assert_not_called()

    def test_blank_url(self):
        self._assert_rejected(make_inputs(target_url="   "))

    def test_no_assets(self):
        self._assert_rejected(make_inputs(assets=[]))

    def test_persona_count_out_of_range(self):
        self._assert_rejected(make_inputs(persona_count=0))
        self._assert_rejected(make_inputs(persona_count=6))

    def test_empty_asset(self):
        self._assert_rejected(make_inputs(assets=[make_asset(data=b"")]))

    def test_oversized_asset(self):
        with patch("council.orchestrator.config.MAX_ASSET_BYTES", 4):
            self._assert_rejected(make_inputs(assets=[Asset(raw_bytes=b"12345", mime_type="image/png")]))

    def test_blank_market_falls_back_to_default(self):
        state = self.orchestrator.run(make_inputs(market=" "))
        self.assertIn("Market: Vietnam", state.log_entries)


if __name__ == "__main__":
    unittest.main()
