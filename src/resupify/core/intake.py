from __future__ import annotations

import logging
from collections.abc import Callable

from resupify.config import Settings, get_settings
from resupify.core.job_fetcher import fetch_job_text
from resupify.db.models import JdSnapshot
from resupify.db.repositories import Repository
from resupify.errors import ValidationError

logger = logging.getLogger(__name__)


def capture_jd_snapshot(
    repo: Repository,
    job_card_id: int,
    *,
    user_id: int,
    text: str = "",
    url: str = "",
    settings: Settings | None = None,
    fetcher: Callable[..., str] = fetch_job_text,
) -> JdSnapshot:
    """Store a new immutable JD version from pasted text, or from the posting URL when no text is given."""
    settings = settings or get_settings()
    job_card = repo.require_job_card(job_card_id, user_id)

    body = text.strip()
    if not body and url:
        body = fetcher(url, timeout_sec=settings.openai_timeout_sec, max_chars=settings.jd_max_chars)
    if not body:
        raise ValidationError("paste the job description text or give a posting URL")
    if len(body) > settings.jd_max_chars:
        raise ValidationError(f"job description is longer than {settings.jd_max_chars} characters")

    snapshot = repo.add_jd_snapshot(job_card.id, body, source_url=url.strip())
    logger.info("JD snapshot v%s saved job_card=%s chars=%s", snapshot.version, job_card.id, len(body))
    return snapshot
