"""Stage runners: Research, Recruit, Judge (fan-out/fan-in), Synthesize.

Each runner makes its reasoning-service call(s), validates what comes back,
and either returns trusted data or raises. Runners never touch pipeline
state; the orchestrator commits what they return.
"""

from __future__ import annotations

import json
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Callable, Optional, Sequence

import config
from council.errors import JudgePartialFailure, SchemaValidationError, ServiceError
from council.llm import Attachment, ReasoningService
from council.validation import Invalid, validate_payload, validate_payload_list
from prompts import judge as judge_prompt
from prompts import recruit as recruit_prompt
from prompts import research as research_prompt
from prompts import synthesis as synthesis_prompt
from schemas.council import (
    Asset,
    BrandProfile,
    CouncilMetrics,
    Judgment,
    JudgmentPayload,
    Persona,
    response_schema,
)

logger = logging.getLogger(__name__)

BRAND_PROFILE_SCHEMA = response_schema(BrandProfile)
PERSONA_LIST_SCHEMA = response_schema(Persona, many=True)
JUDGMENT_SCHEMA = response_schema(JudgmentPayload)

# (persona, judgment, completed_so_far, total), called on the control thread
JudgmentCallback = Callable[[Persona, Judgment, int, int], None]


def _join(items: Sequence[str], sep: str = ", ") -> str:
    return sep.join(i for i in items if i) or "n/a"


def _unwrap_array(payload: Any) -> Any:
    # Models sometimes wrap a requested array as {"personas": [...]}.
    if isinstance(payload, dict) and len(payload) == 1:
        (value,) = payload.values()
        if isinstance(value, list):
            return value
    return payload


def build_attachments(assets: Sequence[Asset]) -> list[Attachment]:
    return [Attachment(mime_type=a.mime_type, data=a.raw_bytes) for a in assets]


class StageRunner:
    """Runs one pipeline stage at a time against a ReasoningService."""

    def __init__(self, service: ReasoningService, max_concurrency: int | None = None):
        self.service = service
        self.max_concurrency = (
            config.JUDGE_MAX_CONCURRENCY if max_concurrency is None else max_concurrency
        )

    # ------------------------------------------------------------------
    # Research
    # ------------------------------------------------------------------

    def research(self, target_url: str) -> BrandProfile:
        prompt = research_prompt.PROMPT.format(target_url=target_url)
        payload = self.service.generate_structured(
            prompt,
            schema=BRAND_PROFILE_SCHEMA,
            use_search=True,
            stage="research",
        )
        result = validate_payload(BrandProfile, payload)
        if isinstance(result, Invalid):
            raise SchemaValidationError("research", result.reason)
        return result.data

    # ------------------------------------------------------------------
    # Recruit
    # ------------------------------------------------------------------

    def recruit(self, brand: BrandProfile, count: int, market: str) -> list[Persona]:
        prompt = recruit_prompt.PROMPT.format(
            market=market,
            brand_name=brand.name,
            category=brand.category,
            tone=_join(brand.tone),
            usps=_join(brand.unique_selling_propositions, "; "),
            target_audience=brand.target_audience,
            count=count,
        )
        payload = self.service.generate_structured(
            prompt,
            schema=PERSONA_LIST_SCHEMA,
            stage="recruit",
        )
        result = validate_payload_list(
            Persona,
            _unwrap_array(payload),
            expected_count=count,
            unique_field="id",
        )
        if isinstance(result, Invalid):
            raise SchemaValidationError("recruit", result.reason)
        return result.data

    # ------------------------------------------------------------------
    # Judge
    # ------------------------------------------------------------------

    def _judge_one(
        self,
        persona: Persona,
        brand: BrandProfile,
        attachments: Sequence[Attachment],
    ) -> Judgment:
        prompt = judge_prompt.PROMPT.format(
            name=persona.name,
            age=persona.age,
            occupation=persona.occupation,
            bio=persona.bio,
            pain_points=_join(persona.pain_points),
            brand_name=brand.name,
        )
        payload = self.service.generate_structured(
            prompt,
            schema=JUDGMENT_SCHEMA,
            attachments=attachments,
            stage="judge",
        )
        result = validate_payload(JudgmentPayload, payload)
        if isinstance(result, Invalid):
            raise SchemaValidationError(f"judge[{persona.id}]", result.reason)
        return Judgment(persona_id=persona.id, **result.data.model_dump())

    def judge(
        self,
        personas: Sequence[Persona],
        brand: BrandProfile,
        assets: Sequence[Asset],
        on_judgment: Optional[JudgmentCallback] = None,
    ) -> list[Judgment]:
        """Fan out one call per persona, then fan in once all have settled.

        Workers only call the service and validate. Completions come back to
        the calling thread through as_completed, which is the only place
        on_judgment runs. Any failure fails the whole stage; nothing partial
        is returned. The result is in persona order regardless of completion
        order.
        """
        if not personas:
            return []

        attachments = build_attachments(assets)
        total = len(personas)
        workers = total if self.max_concurrency <= 0 else min(self.max_concurrency, total)
        logger.info("Judge fan-out: %d persona(s), %d worker(s), %d asset(s)", total, workers, len(assets))

        by_persona: dict[str, Judgment] = {}
        failures: dict[str, BaseException] = {}
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="council-judge") as pool:
            futures = {
                pool.submit(self._judge_one, persona, brand, attachments): persona
                for persona in personas
            }
            for future in as_completed(futures):
                persona = futures[future]
                try:
                    judgment = future.result()
                except Exception as exc:
                    logger.error("Judge %s (%s) failed: %s", persona.name, persona.id, exc)
                    failures[persona.id] = exc
                    continue
                by_persona[persona.id] = judgment
                if on_judgment is not None:
                    on_judgment(persona, judgment, len(by_persona), total)

        if failures:
            raise JudgePartialFailure(failures, total=total)

        return [by_persona[persona.id] for persona in personas]

    # ------------------------------------------------------------------
    # Synthesize
    # ------------------------------------------------------------------

    def synthesize(
        self,
        brand: BrandProfile,
        personas: Sequence[Persona],
        judgments: Sequence[Judgment],
        metrics: CouncilMetrics,
    ) -> str:
        lookup = {persona.id: persona for persona in personas}
        entries = []
        for judgment in judgments:
            persona = lookup.get(judgment.persona_id)
            if persona is None:
                raise SchemaValidationError(
                    "synthesize", f"judgment for unknown persona '{judgment.persona_id}'"
                )
            entries.append(synthesis_entry(persona, judgment))

        prompt = synthesis_prompt.PROMPT.format(
            brand_name=brand.name,
            judgments_json=json.dumps(entries, indent=2, ensure_ascii=False),
            metrics_json=metrics.model_dump_json(indent=2),
            tone=_join(brand.tone),
            usps=_join(brand.unique_selling_propositions, "; "),
        )
        report = self.service.generate_text(prompt, stage="synthesize")
        if not report or not report.strip():
            raise ServiceError("synthesize: reasoning service returned an empty report")
        return report.strip()


def synthesis_entry(persona: Persona, judgment: Judgment) -> dict[str, Any]:
    """One judgment enriched with the identity of the persona who gave it."""
    entry: dict[str, Any] = {
        "personaId": persona.id,
        "personaName": persona.name,
        "role": persona.occupation,
        "age": persona.age,
    }
    if persona.gender:
        entry["gender"] = persona.gender
    if persona.location:
        entry["location"] = persona.location
    reaction = judgment.model_dump(by_alias=True, exclude_none=True)
    reaction.pop("personaId", None)
    entry.update(reaction)
    return entry
