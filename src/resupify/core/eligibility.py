from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from resupify.packs import RegionPack, WorkAuthRule
from resupify.types import PrecheckStatus, WorkAuthFlag


@dataclass(slots=True)
class PrecheckResult:
    status: PrecheckStatus
    triggered_rules: list[dict[str, str]] = field(default_factory=list)


def _profile_value(profile: Any, name: str, default: Any = None) -> Any:
    if profile is None:
        return default
    value = getattr(profile, name, default)
    return default if value in (None, "") else value


def is_triggered(rule: WorkAuthRule, jd_text: str) -> bool:
    lower = (jd_text or "").lower()
    return any(phrase.lower() in lower for phrase in rule.trigger_phrases)


def conflicts_with_profile(rule: WorkAuthRule, profile: Any) -> bool:
    """True only when the profile explicitly contradicts the rule; unknown values never conflict."""
    match rule.condition:
        case "work_status != citizen_pr":
            return _profile_value(profile, "work_status", "unknown") == "temporary_resident"
        case "needs_sponsorship == true":
            return _profile_value(profile, "needs_sponsorship", "unknown") == "true"
        case "work_status == unknown":
            return False
        case "country_of_residence != Canada":
            country = _profile_value(profile, "country_of_residence")
            return country is not None and str(country).strip().lower() != "canada"
        case _:
            return False


def penalty_applies(rule: WorkAuthRule, profile: Any) -> bool:
    if rule.condition == "work_status == unknown":
        return _profile_value(profile, "work_status", "unknown") == "unknown"
    return conflicts_with_profile(rule, profile)


def run_eligibility_precheck(jd_text: str, profile: Any, rules: list[WorkAuthRule]) -> PrecheckResult:
    if not jd_text or not rules:
        return PrecheckResult(status="none")

    triggered: list[dict[str, str]] = []
    has_conflict = False
    for rule in rules:
        if not is_triggered(rule, jd_text):
            continue
        triggered.append({"rule_id": rule.id, "title": rule.label})
        has_conflict = has_conflict or conflicts_with_profile(rule, profile)

    if not triggered:
        return PrecheckResult(status="none")
    return PrecheckResult(status="conflict" if has_conflict else "recommended", triggered_rules=triggered)


def evaluate_work_auth_flags(jd_text: str, profile: Any, pack: RegionPack) -> list[WorkAuthFlag]:
    flags: list[WorkAuthFlag] = []
    for rule in pack.work_auth_rules:
        if not is_triggered(rule, jd_text):
            continue
        flags.append(
            WorkAuthFlag(
                rule_id=rule.id,
                title=rule.label,
                guidance=rule.message,
                penalty=rule.penalty if penalty_applies(rule, profile) else 0,
            )
        )
    return flags


def merge_work_auth_flags(evaluated: list[WorkAuthFlag], reported: list[WorkAuthFlag]) -> list[WorkAuthFlag]:
    """Evaluated flags are authoritative; model-only flags are kept as advisory with no penalty."""
    known = {flag.rule_id for flag in evaluated}
    merged = list(evaluated)
    for flag in reported:
        if flag.rule_id in known:
            continue
        known.add(flag.rule_id)
        merged.append(flag.model_copy(update={"penalty": 0}))
    return merged


def missing_eligibility_fields(profile: Any, pack: RegionPack) -> list[str]:
    risks = []
    for check in pack.eligibility_checks:
        if check.required and _profile_value(profile, check.field) in (None, False):
            risks.append(check.risk_message)
    return risks


def build_eligibility_context(profile: Any, pack: RegionPack) -> str:
    lines = [
        f"- Track: {pack.label}",
        f"- Work status: {_profile_value(profile, 'work_status', 'unknown')}",
        f"- Needs sponsorship: {_profile_value(profile, 'needs_sponsorship', 'unknown')}",
        f"- Country of residence: {_profile_value(profile, 'country_of_residence', 'unknown')}",
    ]
    graduation = _profile_value(profile, "graduation_date")
    if graduation is not None:
        lines.append(f"- Graduation date: {graduation}")
    enrolled = _profile_value(profile, "currently_enrolled")
    if enrolled is not None:
        lines.append(f"- Currently enrolled: {'yes' if enrolled else 'no'}")
    for risk in missing_eligibility_fields(profile, pack):
        lines.append(f"- Risk: {risk}")
    return "\n".join(lines)
