from __future__ import annotations

import logging

import requests
from bs4 import BeautifulSoup

from resupify.errors import UpstreamError, ValidationError

logger = logging.getLogger(__name__)


USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/128.0.0.0 Safari/537.36"
)
STRIPPED_TAGS = ["script", "style", "noscript", "nav", "footer", "header", "svg"]


def html_to_text(html: str) -> str:
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(STRIPPED_TAGS):
        tag.extract()

    lines = [line.strip() for line in soup.get_text("\n").splitlines() if line.strip()]
    return "\n".join(lines)


def fetch_job_text(url: str, *, timeout_sec: float = 30, max_chars: int = 25000) -> str:
    """Download a posting and reduce it to plain text for a JD snapshot."""
    if not url.lower().startswith(("http://", "https://")):
        raise ValidationError(f"job URL must be http(s): {url!r}")

    try:
        response = requests.get(url, timeout=timeout_sec, headers={"User-Agent": USER_AGENT})
        response.raise_for_status()
    except requests.RequestException as exc:
        logger.warning("Failed to fetch job URL %s: %s", url, exc)
        raise UpstreamError(f"could not fetch job posting: {exc}") from exc

    text = html_to_text(response.text)
    if not text:
        raise UpstreamError(f"job posting at {url} has no readable text")
    return text[:max_chars]
