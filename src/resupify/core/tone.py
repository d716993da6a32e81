from __future__ import annotations

import re

BANNED_PHRASES: tuple[str, ...] = (
    "strong interest to reiterate",
    "I wanted to reiterate",
    "I want to reiterate",
    "circling back once more",
    "reaching out once more",
    "following my previous",
    "final follow up",
    "final follow-up",
    "I am writing again",
    "I'm writing again",
    "as I mentioned before",
    "as previously mentioned",
    "I hope this doesn't come across",
    "I don't want to be a bother",
    "I know you're busy",
    "I understand you're busy",
    "I would appreciate a reply",
    "I'm waiting",
    "I am waiting",
    "reiterate",
    "once more",
    "urgent",
)

PREFERRED_PHRASES: tuple[str, ...] = (
    "Hope you're doing well. I wanted to share a quick note in case helpful",
    "No rush at all, just wanted to follow up briefly",
    "Whenever you have a moment, I'd appreciate any update you're able to share",
    "Totally understand if timing isn't right, I just wanted to keep this on your radar",
    "Thanks for your time, I appreciate it",
    "if there's any update you can share",
    "I'd love to learn more",
    "thank you for considering",
    "happy to provide any additional information",
    "looking forward to hearing from you",
)

ALLOWED_NOT_PREFERRED: tuple[str, ...] = ("just checking in", "wanted to follow up")

NO_PRESSURE_MARKERS: tuple[str, ...] = (
    "no rush",
    "no pressure",
    "whenever you have a moment",
    "totally understand if",
    "if you're able to share",
    "if there's any update",
    "if timing isn't right",
    "at your convenience",
    "whenever works for you",
)

APPRECIATION_MARKERS: tuple[str, ...] = ("thank you", "thanks for", "appreciate", "grateful")

RULE_TEXT = (
    "Always be appreciative and professional. Avoid demanding language. "
    "Never imply entitlement or pressure. Do not use guilt framing. "
    "Prefer soft, warm phrasing over assertive or repetitive language."
)

FOLLOW_UP_CLOSING = "No rush at all, thanks for your time."

_BANNED_PATTERNS = [
    re.compile(r"(?<!\w)" + re.escape(phrase) + r"(?!\w)", re.IGNORECASE) for phrase in BANNED_PHRASES
]


def build_tone_system_prompt() -> str:
    banned = "\n".join(f'- "{phrase}"' for phrase in BANNED_PHRASES)
    preferred = "\n".join(f'- "{phrase}"' for phrase in PREFERRED_PHRASES)
    allowed = "\n".join(f'- "{phrase}"' for phrase in ALLOWED_NOT_PREFERRED)
    return (
        "TONE GUARDRAILS (MANDATORY):\n"
        f"{RULE_TEXT}\n\n"
        "Hard rules:\n"
        "- Never use demanding language. Keep tone appreciative and low-pressure.\n"
        "- Do not use any banned phrase. If you would, rewrite to a softer alternative.\n"
        "- follow_up_1 and follow_up_2 MUST include one no-pressure clause and one appreciation phrase.\n"
        "- Follow-up emails should be 60 to 120 words.\n\n"
        f"Banned phrases (never use):\n{banned}\n\n"
        f"Preferred soft phrases (use these most):\n{preferred}\n\n"
        f"Allowed but NOT preferred (avoid unless needed):\n{allowed}"
    )


def sanitize_tone(text: str, is_follow_up: bool = False) -> str:
    """Remove deny-listed phrases in place; follow-ups also get a soft closing when they lack one."""
    if not text:
        return text

    result = text
    for pattern in _BANNED_PATTERNS:
        result = pattern.sub("", result)

    result = re.sub(r"[ \t]{2,}", " ", result)
    result = re.sub(r" +([,.!?])", r"\1", result)
    result = re.sub(r"\n{3,}", "\n\n", result).strip()

    if not is_follow_up:
        return result

    lower = result.lower()
    has_no_pressure = any(marker in lower for marker in NO_PRESSURE_MARKERS)
    has_appreciation = any(marker in lower for marker in APPRECIATION_MARKERS)
    if not has_no_pressure or not has_appreciation:
        result = result.rstrip() + "\n\n" + FOLLOW_UP_CLOSING
    return result


def find_banned_phrases(text: str) -> list[str]:
    return [phrase for phrase, pattern in zip(BANNED_PHRASES, _BANNED_PATTERNS) if pattern.search(text or "")]
