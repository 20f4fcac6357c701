"""Derived metrics over a completed set of judgments.

Pure functions, no I/O. The output feeds both the CLI/dashboard and the
synthesis prompt, so every figure the report quotes is computed here rather
than left to the model.
"""

from __future__ import annotations

from collections import Counter
from decimal import ROUND_HALF_UP, Decimal
from statistics import median, pstdev
from typing import Iterable, Optional, Sequence

from schemas.council import SCORE_BUCKETS, CouncilMetrics, Judgment, TagCount

TOP_EMOTIONS = 6
TOP_PROS_CONS = 6
CONSENSUS_BAND = 10


def round_half_up(value: float, digits: int = 0) -> float:
    """Round like a calculator (2.5 -> 3), not banker's rounding."""
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def _normalize(label: Optional[str]) -> str:
    return (label or "").strip().lower()


def top_counts(labels: Iterable[Optional[str]], limit: Optional[int] = None) -> list[TagCount]:
    """Count labels case- and whitespace-insensitively.

    Highest count first; ties keep the order in which labels were first seen.
    """
    counts: Counter[str] = Counter()
    for label in labels:
        key = _normalize(label)
        if key:
            counts[key] += 1
    ranked = sorted(counts.items(), key=lambda kv: kv[1], reverse=True)
    if limit is not None:
        ranked = ranked[:limit]
    return [TagCount(label=label, count=count) for label, count in ranked]


def score_bucket(score: float) -> str:
    if score <= 20:
        return SCORE_BUCKETS[0]
    if score <= 40:
        return SCORE_BUCKETS[1]
    if score <= 60:
        return SCORE_BUCKETS[2]
    if score <= 80:
        return SCORE_BUCKETS[3]
    return SCORE_BUCKETS[4]


def _percent(part: int, whole: int) -> int:
    return int(round_half_up(100 * part / whole))


def aggregate(judgments: Sequence[Judgment]) -> CouncilMetrics:
    """Summarize judgments. Empty input gives CouncilMetrics.empty()."""
    if not judgments:
        return CouncilMetrics.empty()

    n = len(judgments)
    scores = [j.score for j in judgments]
    mean_score = sum(scores) / n

    intensities = [j.emotional_intensity or 0 for j in judgments]
    shares = [j.share_likelihood or 0 for j in judgments]

    distribution = {bucket: 0 for bucket in SCORE_BUCKETS}
    for score in scores:
        distribution[score_bucket(score)] += 1

    within_band = sum(1 for s in scores if abs(s - mean_score) <= CONSENSUS_BAND)
    polarized = distribution[SCORE_BUCKETS[0]] + distribution[SCORE_BUCKETS[-1]]

    return CouncilMetrics(
        count=n,
        average_score=int(round_half_up(mean_score)),
        median_score=round_half_up(median(scores), 1),
        score_stdev=round_half_up(pstdev(scores), 1),
        score_distribution=distribution,
        average_intensity=round_half_up(sum(intensities) / n, 1),
        average_share_likelihood=int(round_half_up(sum(shares) / n)),
        consensus_index=_percent(within_band, n),
        polarization_index=_percent(polarized, n),
        top_emotions=top_counts(
            (tag for j in judgments for tag in (j.emotional_tags or [])),
            TOP_EMOTIONS,
        ),
        trust_breakdown=top_counts(j.trust_perception for j in judgments),
        top_pros=top_counts((p for j in judgments for p in j.pros), TOP_PROS_CONS),
        top_cons=top_counts((c for j in judgments for c in j.cons), TOP_PROS_CONS),
    )
