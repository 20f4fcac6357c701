"""Council orchestrator: the state machine that sequences the stages.

    idle → researching → recruiting_personas → judging → synthesizing → complete
                  └──────────────┴──────────────┴─────────────┴──→ failed

The orchestrator owns PipelineState. Only the control thread (the one running
``run``) writes to it; readers get deep copies from ``snapshot()``.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional

import config
from council.errors import (
    InputError,
    PipelineBusyError,
    PipelineError,
    RestartConfirmationRequired,
)
from council.llm import GeminiReasoningService, ReasoningService, reset_usage
from council.metrics import aggregate
from council.progress import ProgressLog
from council.stages import StageRunner
from schemas.council import (
    Judgment,
    Persona,
    PipelineState,
    RunInputs,
    Stage,
)

logger = logging.getLogger(__name__)

# Progress range per stage: (entry %, exit %)
STAGE_PROGRESS: dict[Stage, tuple[float, float]] = {
    Stage.RESEARCHING: (5.0, 30.0),
    Stage.RECRUITING_PERSONAS: (30.0, 50.0),
    Stage.JUDGING: (50.0, 85.0),
    Stage.SYNTHESIZING: (85.0, 100.0),
}


def validate_inputs(inputs: RunInputs) -> RunInputs:
    """Check caller inputs before anything runs. Raises InputError.

    Returns a normalized copy (trimmed URL, default market filled in).
    """
    url = (inputs.target_url or "").strip()
    if not url:
        raise InputError("Please provide a target URL.")
    if not inputs.assets:
        raise InputError("Please upload at least one creative asset.")
    count = inputs.persona_count
    if not (config.MIN_PERSONAS <= count <= config.MAX_PERSONAS):
        raise InputError(
            f"Council size must be between {config.MIN_PERSONAS} and {config.MAX_PERSONAS} (got {count})."
        )
    for asset in inputs.assets:
        if asset.size == 0:
            raise InputError(f"Asset {asset.id} is empty.")
        if asset.size > config.MAX_ASSET_BYTES:
            raise InputError(
                f"Asset {asset.id} is too large ({asset.size} bytes, limit {config.MAX_ASSET_BYTES})."
            )
    market = (inputs.market or "").strip() or config.DEFAULT_MARKET
    return inputs.model_copy(update={"target_url": url, "market": market})


class Orchestrator:
    """Sequences Research → Recruit → Judge → Synthesize for one council."""

    def __init__(
        self,
        service: ReasoningService | None = None,
        runner: StageRunner | None = None,
        progress: ProgressLog | None = None,
    ):
        self.runner = runner or StageRunner(service or GeminiReasoningService())
        self.progress = progress or ProgressLog()
        self._lock = threading.RLock()
        self._state = PipelineState()
        self._worker: Optional[threading.Thread] = None

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    @property
    def stage(self) -> Stage:
        with self._lock:
            return self._state.stage

    def snapshot(self) -> PipelineState:
        """Deep copy of the current state, with the progress log folded in.

        Stage and percentage are read under the same lock they are written
        under, so a snapshot never pairs a stage with another stage's progress.
        """
        with self._lock:
            state = self._state.model_copy(deep=True)
            entries, percent = self.progress.snapshot()
        state.log_entries = entries
        state.progress_percent = percent
        return state

    # ------------------------------------------------------------------
    # Caller operations
    # ------------------------------------------------------------------

    def reset(self):
        """Discard the current run and return to a fresh idle state."""
        with self._lock:
            if self._state.stage.is_running:
                raise PipelineBusyError("Cannot reset while a council run is in progress.")
            self._state = PipelineState()
            self.progress.clear()
        logger.info("Council state reset")

    def start(self, inputs: RunInputs, *, confirm_restart: bool = False):
        """Validate inputs, then run the council on a background thread.

        Returns as soon as the run has been accepted. Progress is observable
        through ``snapshot()`` and ``progress.subscribe()``.
        """
        inputs = validate_inputs(inputs)
        self._begin(confirm_restart)
        self._worker = threading.Thread(
            target=self._run_in_background,
            args=(inputs,),
            name="council-run",
            daemon=True,
        )
        self._worker.start()

    def wait(self, timeout: float | None = None) -> PipelineState:
        """Block until a background run finishes (or timeout), then snapshot."""
        worker = self._worker
        if worker is not None:
            worker.join(timeout)
        return self.snapshot()

    def run(self, inputs: RunInputs, *, confirm_restart: bool = False) -> PipelineState:
        """Run the whole council on the calling thread.

        Returns the final state on success. On failure the state is left in
        ``failed`` and the error is re-raised.
        """
        inputs = validate_inputs(inputs)
        self._begin(confirm_restart)
        return self._execute(inputs)

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def _begin(self, confirm_restart: bool):
        """Claim the orchestrator for a new run, with a clean state.

        Usage accounting restarts here, once the run is accepted, so a
        rejected start leaves the in-flight run's usage alone.
        """
        with self._lock:
            stage = self._state.stage
            if stage.is_running:
                raise PipelineBusyError(f"A council run is already in progress ({stage.value}).")
            if stage == Stage.COMPLETE and not confirm_restart:
                raise RestartConfirmationRequired()
            reset_usage()
            self._state = PipelineState(stage=Stage.RESEARCHING)
            self.progress.clear()
            self.progress.advance(STAGE_PROGRESS[Stage.RESEARCHING][0])

    def _run_in_background(self, inputs: RunInputs):
        try:
            self._execute(inputs)
        except PipelineError:
            # Already recorded in state and the progress log.
            pass
        except Exception:
            logger.exception("Council run crashed")

    def _enter(self, stage: Stage):
        with self._lock:
            self._state.stage = stage
            self.progress.advance(STAGE_PROGRESS[stage][0])

    def _execute(self, inputs: RunInputs) -> PipelineState:
        log = self.progress.append
        log("Initializing Creative Council...")
        log(f"Target URL: {inputs.target_url}")
        log(f"Market: {inputs.market}")
        log(f"Assets: {len(inputs.assets)}")

        try:
            # 1. Research
            self._enter(Stage.RESEARCHING)
            log("RESEARCH: Scanning digital footprint...")
            brand = self.runner.research(inputs.target_url)
            with self._lock:
                self._state.brand_profile = brand
            log(f"RESEARCH: Profile built for {brand.name}.")

            # 2. Recruit
            self._enter(Stage.RECRUITING_PERSONAS)
            log(f"RECRUITMENT: Assembling {inputs.persona_count} distinct voices...")
            personas = self.runner.recruit(brand, inputs.persona_count, inputs.market)
            with self._lock:
                self._state.personas = list(personas)
            for persona in personas:
                log(f"RECRUITMENT: {persona.name} ({persona.occupation}) joined the council.")

            # 3. Judge
            self._enter(Stage.JUDGING)
            log("COUNCIL: Deliberating on creative assets...")
            for persona in personas:
                log(f"JUDGE ({persona.name}): Reviewing campaign...")
            judgments = self.runner.judge(
                personas, brand, inputs.assets, on_judgment=self._on_judgment
            )
            metrics = aggregate(judgments)
            with self._lock:
                self._state.judgments = list(judgments)
                self._state.metrics = metrics

            # 4. Synthesize
            self._enter(Stage.SYNTHESIZING)
            log("SYNTHESIS: Finalizing strategy report...")
            report = self.runner.synthesize(brand, personas, judgments, metrics)
            with self._lock:
                self._state.final_report_text = report
                self._state.stage = Stage.COMPLETE
                self.progress.advance(100.0)
            log("SYSTEM: Process complete.")
        except Exception as exc:
            self._fail(exc)
            raise

        return self.snapshot()

    def _on_judgment(self, persona: Persona, judgment: Judgment, completed: int, total: int):
        entry, exit_ = STAGE_PROGRESS[Stage.JUDGING]
        self.progress.append(f"JUDGE ({persona.name}): Score {judgment.score:g}/100.")
        self.progress.advance(entry + (exit_ - entry) * completed / total)

    def _fail(self, exc: BaseException):
        """Move to ``failed`` and record the error.

        Progress keeps the value reached before the failure instead of
        dropping back to 0, so a failed run still shows how far it got.
        ``reset()`` and the next accepted start clear it.
        """
        message = str(exc) or exc.__class__.__name__
        with self._lock:
            failed_in = self._state.stage
            self._state.stage = Stage.FAILED
            self._state.errors.append(message)
        logger.error("Council run failed during %s: %s", failed_in.value, message)
        self.progress.append(f"ERROR: {message}")
