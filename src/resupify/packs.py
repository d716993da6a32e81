from __future__ import annotations

from pydantic import BaseModel, Field, model_validator

from resupify.types import RequirementType

# Pack weight key for every requirement type; pack weights and evidence groups share this table.
GROUP_WEIGHT_KEYS: dict[str, str] = {
    "eligibility": "eligibility",
    "tool": "tools",
    "responsibility": "responsibilities",
    "skill": "skills",
    "softskill": "soft_skills",
}

GROUP_LABELS: dict[str, str] = {
    "eligibility": "Eligibility",
    "tool": "Tools",
    "responsibility": "Responsibilities",
    "skill": "Skills",
    "softskill": "Soft Skills",
}


class ScoringWeights(BaseModel):
    eligibility: float
    tools: float
    responsibilities: float
    skills: float
    soft_skills: float

    @model_validator(mode="after")
    def validate_sum(self) -> ScoringWeights:
        total = self.eligibility + self.tools + self.responsibilities + self.skills + self.soft_skills
        if abs(total - 1.0) > 1e-6:
            raise ValueError(f"scoring weights must sum to 1.0, got {total:.3f}")
        return self

    def for_group(self, group_type: RequirementType | str) -> float:
        return float(getattr(self, GROUP_WEIGHT_KEYS[group_type]))


class CopyRules(BaseModel):
    no_invented_facts: bool = True
    needs_confirmation_label: str = "Needs confirmation"
    convert_projects_to_experience: bool = True


class EligibilityCheck(BaseModel):
    field: str
    label: str
    required: bool = True
    risk_message: str


class WorkAuthRule(BaseModel):
    id: str
    label: str
    trigger_phrases: list[str]
    condition: str
    penalty: int
    message: str


class PackTemplates(BaseModel):
    cover_letter_style: str
    outreach_tone: str
    follow_up_days: int = 5


class RegionPack(BaseModel):
    region_code: str
    track_code: str
    label: str
    resume_sections: list[str] = Field(default_factory=list)
    copy_rules: CopyRules = Field(default_factory=CopyRules)
    eligibility_checks: list[EligibilityCheck] = Field(default_factory=list)
    work_auth_rules: list[WorkAuthRule] = Field(default_factory=list)
    scoring_weights: ScoringWeights
    templates: PackTemplates
    track_tips: list[str] = Field(default_factory=list)

    @property
    def key(self) -> str:
        return f"{self.region_code}_{self.track_code}"


CA_WORK_AUTH_RULES = [
    WorkAuthRule(
        id="citizen_pr_requirement",
        label="Citizen/PR Requirement",
        trigger_phrases=[
            "canadian citizen",
            "permanent resident",
            "pr required",
            "citizen or pr",
            "must be citizen",
            "must be pr",
        ],
        condition="work_status != citizen_pr",
        penalty=-35,
        message="Posting asks for Citizen/PR. If you're not sure, confirm with recruiter.",
    ),
    WorkAuthRule(
        id="no_sponsorship",
        label="No Sponsorship Available",
        trigger_phrases=[
            "no sponsorship",
            "without sponsorship",
            "sponsorship not available",
            "sponsorship not provided",
        ],
        condition="needs_sponsorship == true",
        penalty=-35,
        message="Posting says no sponsorship. Consider prioritizing other roles or confirming directly.",
    ),
    WorkAuthRule(
        id="work_authorization_unclear",
        label="Work Authorization Status",
        trigger_phrases=[
            "legally authorized to work in canada",
            "authorized to work in canada",
            "legally entitled to work",
        ],
        condition="work_status == unknown",
        penalty=-10,
        message="Posting may screen for work authorization. Add your status to reduce uncertainty.",
    ),
    WorkAuthRule(
        id="location_requirement",
        label="Location Requirement",
        trigger_phrases=[
            "must be located in canada",
            "must reside in canada",
            "canada-based",
            "based in canada",
        ],
        condition="country_of_residence != Canada",
        penalty=-15,
        message="Posting mentions location requirement. Confirm if remote/relocation is possible.",
    ),
]

CA_COOP = RegionPack(
    region_code="CA",
    track_code="COOP",
    label="Canada Co-op",
    resume_sections=["education", "skills", "projects", "experience", "volunteering", "certifications"],
    eligibility_checks=[
        EligibilityCheck(
            field="currently_enrolled",
            label="Currently Enrolled",
            risk_message="This co-op posting requires you to be currently enrolled in a post-secondary program.",
        ),
        EligibilityCheck(
            field="school",
            label="School / Institution",
            risk_message=(
                "Your profile is missing school information. "
                "Many co-op postings require institutional affiliation."
            ),
        ),
        EligibilityCheck(
            field="program",
            label="Program",
            risk_message="Your profile is missing program information. Employers verify co-op eligibility by program.",
        ),
    ],
    work_auth_rules=CA_WORK_AUTH_RULES,
    scoring_weights=ScoringWeights(
        eligibility=0.25, tools=0.20, responsibilities=0.20, skills=0.20, soft_skills=0.15
    ),
    templates=PackTemplates(cover_letter_style="formal-academic", outreach_tone="professional-eager"),
    track_tips=[
        "Put education section first, co-op employers check enrollment status.",
        "Include your co-op sequence number if applicable (e.g., 'Work Term 2 of 6').",
        "Highlight relevant coursework that maps to the JD requirements.",
        "Mention any academic projects that demonstrate hands-on skills.",
    ],
)

CA_NEW_GRAD = RegionPack(
    region_code="CA",
    track_code="NEW_GRAD",
    label="Canada New Graduate",
    resume_sections=["experience", "education", "skills", "projects", "certifications", "volunteering"],
    eligibility_checks=[
        EligibilityCheck(
            field="graduation_date",
            label="Graduation Date",
            risk_message="Your profile is missing graduation date. New grad roles often have eligibility windows.",
        ),
    ],
    work_auth_rules=CA_WORK_AUTH_RULES,
    scoring_weights=ScoringWeights(
        eligibility=0.15, tools=0.25, responsibilities=0.25, skills=0.20, soft_skills=0.15
    ),
    templates=PackTemplates(cover_letter_style="professional-concise", outreach_tone="professional-confident"),
    track_tips=[
        "Lead with experience if you have any, even part-time or freelance counts.",
        "Include your graduation date prominently to confirm new-grad eligibility.",
        "Watch for 'overqualified' signals: if the role says '0-1 years' and you have 3+, flag it.",
        "Convert capstone projects, hackathons, and volunteer work into quantified bullets.",
    ],
)

GLOBAL_COOP = RegionPack(
    region_code="GLOBAL",
    track_code="COOP",
    label="Global Internship / Co-op",
    resume_sections=["education", "skills", "projects", "experience"],
    scoring_weights=ScoringWeights(
        eligibility=0.20, tools=0.20, responsibilities=0.20, skills=0.25, soft_skills=0.15
    ),
    templates=PackTemplates(cover_letter_style="professional-concise", outreach_tone="professional-eager"),
    track_tips=["Highlight coursework and projects that map directly to the posting."],
)

GLOBAL_NEW_GRAD = RegionPack(
    region_code="GLOBAL",
    track_code="NEW_GRAD",
    label="Global New Graduate",
    resume_sections=["experience", "education", "skills", "projects"],
    scoring_weights=ScoringWeights(
        eligibility=0.10, tools=0.25, responsibilities=0.25, skills=0.25, soft_skills=0.15
    ),
    templates=PackTemplates(cover_letter_style="professional-concise", outreach_tone="professional-confident"),
    track_tips=["Quantify project and internship outcomes wherever the numbers are real."],
)

PACKS: dict[str, RegionPack] = {
    pack.key: pack for pack in (CA_COOP, CA_NEW_GRAD, GLOBAL_COOP, GLOBAL_NEW_GRAD)
}
DEFAULT_PACK = CA_NEW_GRAD


def get_region_pack(region_code: str | None, track_code: str | None) -> RegionPack:
    key = f"{(region_code or '').upper()}_{(track_code or '').upper()}"
    pack = PACKS.get(key)
    if pack is not None:
        return pack
    if (region_code or "").upper() == "GLOBAL":
        return GLOBAL_NEW_GRAD
    return DEFAULT_PACK


def available_packs() -> list[dict[str, str]]:
    return [{"key": key, "label": pack.label} for key, pack in PACKS.items()]
