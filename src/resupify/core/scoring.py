from __future__ import annotations

import math
import re
from collections import Counter
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from resupify.packs import ScoringWeights
from resupify.types import SCORE_CATEGORIES, ScoreBreakdownPayload, WorkAuthFlag

STATUS_CREDIT: dict[str, float] = {"matched": 1.0, "partial": 0.5, "missing": 0.0}

_NUMBER = re.compile(r"\d[\d,.]*%?")


@dataclass(slots=True)
class ScoreComputation:
    overall: int
    pack_coverage: float
    category_blend: float
    penalty_total: int


def clamp_score(value: float) -> int:
    return max(0, min(100, int(math.floor(value + 0.5))))


def count_statuses(statuses: Iterable[str]) -> dict[str, int]:
    counts = Counter(statuses)
    return {
        "matched_count": counts.get("matched", 0),
        "partial_count": counts.get("partial", 0),
        "missing_count": counts.get("missing", 0),
    }


def pack_coverage(items: Sequence[tuple[str, str]], weights: ScoringWeights) -> float:
    """Pack-weighted requirement coverage in [0, 100] over ``(group_type, status)`` pairs."""
    total_weight = sum(weights.for_group(group) for group, _ in items)
    if total_weight <= 0:
        return 0.0
    earned = sum(weights.for_group(group) * STATUS_CREDIT[status] for group, status in items)
    return 100.0 * earned / total_weight


def category_blend(scores: Mapping[str, float], category_weights: Mapping[str, float]) -> float:
    return sum(float(scores[name]) * float(category_weights[name]) for name in SCORE_CATEGORIES)


def compute_overall_score(
    items: Sequence[tuple[str, str]],
    breakdown: ScoreBreakdownPayload,
    *,
    pack_weights: ScoringWeights,
    category_weights: Mapping[str, float],
    blend: float,
    flags: Sequence[WorkAuthFlag] = (),
) -> ScoreComputation:
    coverage = pack_coverage(items, pack_weights)
    scores = {name: getattr(breakdown, name).score for name in SCORE_CATEGORIES}
    categories = category_blend(scores, category_weights)
    penalty_total = sum(min(0, flag.penalty) for flag in flags)

    overall = clamp_score(blend * coverage + (1.0 - blend) * categories + penalty_total)
    return ScoreComputation(
        overall=overall,
        pack_coverage=round(coverage, 2),
        category_blend=round(categories, 2),
        penalty_total=penalty_total,
    )


def build_breakdown_json(
    breakdown: ScoreBreakdownPayload,
    computation: ScoreComputation,
    *,
    statuses: Iterable[str],
    pack_weights: ScoringWeights,
    category_weights: Mapping[str, float],
    blend: float,
    flags: Sequence[WorkAuthFlag],
    model_flags: Sequence[str],
) -> dict[str, Any]:
    data = breakdown.model_dump()
    data["evidence_strength"].update(count_statuses(statuses))
    data["formula"] = {
        "pack_coverage": computation.pack_coverage,
        "category_blend": computation.category_blend,
        "pack_blend": blend,
        "penalty_total": computation.penalty_total,
        "pack_weights": pack_weights.model_dump(),
        "category_weights": dict(category_weights),
        "overall": computation.overall,
    }
    data["work_auth_flags"] = [flag.model_dump() for flag in flags]
    data["flags"] = list(model_flags)
    return data


def rewrite_needs_confirmation(rewrite: str, resume_proof: str | None) -> bool:
    """A rewrite needs confirmation when there is no proof or it cites numbers the proof lacks."""
    if not (rewrite or "").strip():
        return False
    proof = (resume_proof or "").strip()
    if not proof:
        return True
    proof_numbers = {match.rstrip(".,") for match in _NUMBER.findall(proof)}
    rewrite_numbers = {match.rstrip(".,") for match in _NUMBER.findall(rewrite)}
    return bool(rewrite_numbers - proof_numbers)
