from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path

from council.artifacts import write_run_artifacts
from council.errors import JudgePartialFailure, ServiceError
from council.orchestrator import Orchestrator
from schemas.council import PipelineState
from tests.council_fixtures import JUDGMENT_PAYLOADS, REPORT_TEXT, make_inputs, make_service


class RunArtifactsTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmpdir.cleanup)
        self.root = Path(self.tmpdir.name)

    def test_complete_run_writes_every_artifact(self):
        state = Orchestrator(make_service()).run(make_inputs())

        paths = write_run_artifacts(state, self.root / "run")

        self.assertEqual(
            sorted(p.name for p in paths),
            ["brand_profile.json", "judgments.json", "metrics.json", "personas.json", "report.md"],
        )
        judgments = json.loads((self.root / "run" / "judgments.json").read_text())
        self.assertEqual([j["personaId"] for j in judgments], ["p1", "p2", "p3"])
        metrics = json.loads((self.root / "run" / "metrics.json").read_text())
        self.assertEqual(metrics["average_score"], 70)
        self.assertEqual((self.root / "run" / "report.md").read_text().strip(), REPORT_TEXT)

    def test_failed_run_keeps_what_was_committed(self):
        orchestrator = Orchestrator(make_service(report=""))
        with self.assertRaises(ServiceError):
            orchestrator.run(make_inputs())

        paths = write_run_artifacts(orchestrator.snapshot(), self.root)

        names = {p.name for p in paths}
        self.assertIn("judgments.json", names)
        self.assertNotIn("report.md", names)

    def test_failed_run_clears_older_runs_artifacts(self):
        write_run_artifacts(Orchestrator(make_service()).run(make_inputs()), self.root)
        judgments = dict(JUDGMENT_PAYLOADS)
        judgments["Minh"] = ServiceError("rate limited")
        orchestrator = Orchestrator(make_service(judgments=judgments))
        with self.assertRaises(JudgePartialFailure):
            orchestrator.run(make_inputs())

        write_run_artifacts(orchestrator.snapshot(), self.root)

        self.assertEqual(
            sorted(p.name for p in self.root.iterdir()),
            ["brand_profile.json", "personas.json"],
        )

    def test_idle_state_writes_nothing(self):
        self.assertEqual(write_run_artifacts(PipelineState(), self.root), [])


if __name__ == "__main__":
    unittest.main()
