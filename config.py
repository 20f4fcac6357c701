"""Council configuration: model assignments per stage, council limits, paths."""

import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------
ROOT_DIR = Path(__file__).parent
OUTPUT_DIR = ROOT_DIR / os.getenv("OUTPUT_DIR", "outputs")

# ---------------------------------------------------------------------------
# Reasoning service credentials
# ---------------------------------------------------------------------------
GOOGLE_API_KEY = os.getenv("GOOGLE_API_KEY", "") or os.getenv("GEMINI_API_KEY", "")

# ---------------------------------------------------------------------------
# Model names (centralized so they're easy to update)
# ---------------------------------------------------------------------------
GOOGLE_FRONTIER = "gemini-3-pro-preview"
GOOGLE_FAST = "gemini-2.5-flash"

COUNCIL_MODEL = os.getenv("COUNCIL_MODEL", GOOGLE_FRONTIER)

# ---------------------------------------------------------------------------
# Per-Stage Model Assignments
#
# Each stage can specify: model, temperature, max_tokens.
# Override any stage via env: RESEARCH_MODEL=gemini-2.5-pro
#                             JUDGE_TEMPERATURE=0.9
# ---------------------------------------------------------------------------

STAGE_LLM_CONFIG: dict[str, dict] = {
    # Research: search-grounded brand audit, keep it factual
    "research": {
        "model": os.getenv("RESEARCH_MODEL", COUNCIL_MODEL),
        "temperature": float(os.getenv("RESEARCH_TEMPERATURE", "0.3")),
        "max_tokens": 8_000,
    },
    # Recruit: diverse, culturally authentic personas
    "recruit": {
        "model": os.getenv("RECRUIT_MODEL", COUNCIL_MODEL),
        "temperature": float(os.getenv("RECRUIT_TEMPERATURE", "0.9")),
        "max_tokens": 12_000,
    },
    # Judge: multimodal first-person reactions, one call per persona
    "judge": {
        "model": os.getenv("JUDGE_MODEL", COUNCIL_MODEL),
        "temperature": float(os.getenv("JUDGE_TEMPERATURE", "0.8")),
        "max_tokens": 8_000,
    },
    # Synthesize: neutral markdown report
    "synthesize": {
        "model": os.getenv("SYNTHESIZE_MODEL", COUNCIL_MODEL),
        "temperature": float(os.getenv("SYNTHESIZE_TEMPERATURE", "0.4")),
        "max_tokens": 16_000,
    },
}


def get_stage_llm_config(stage: str) -> dict:
    """Return the LLM config for a pipeline stage, with defaults."""
    defaults = {
        "model": COUNCIL_MODEL,
        "temperature": 0.7,
        "max_tokens": 8_000,
    }
    stage_conf = STAGE_LLM_CONFIG.get(stage, {})
    return {**defaults, **stage_conf}


# ---------------------------------------------------------------------------
# Council
# ---------------------------------------------------------------------------
MIN_PERSONAS = 1
MAX_PERSONAS = 5
DEFAULT_PERSONA_COUNT = int(os.getenv("DEFAULT_PERSONA_COUNT", "3"))

DEFAULT_MARKET = os.getenv("DEFAULT_MARKET", "Vietnam")
MARKETS = [
    "Vietnam", "United States", "United Kingdom", "Singapore",
    "Japan", "South Korea", "Australia", "Germany",
    "France", "India", "Brazil", "Canada", "Thailand", "Indonesia",
]

# Uploads above this size are rejected before the run starts.
MAX_ASSET_BYTES = int(os.getenv("MAX_ASSET_BYTES", str(1024 * 1024 * 1024)))

# Upper bound on in-flight judge calls. 0 = one worker per persona.
JUDGE_MAX_CONCURRENCY = int(os.getenv("JUDGE_MAX_CONCURRENCY", "0"))

# Transport-level attempts per reasoning call (rate limits, 5xx, timeouts).
LLM_MAX_ATTEMPTS = int(os.getenv("LLM_MAX_ATTEMPTS", "3"))

# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
