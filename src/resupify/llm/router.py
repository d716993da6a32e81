from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Generic, Protocol, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as SchemaValidationError

from resupify.config import Settings, get_settings
from resupify.errors import UpstreamError
from resupify.llm.providers import LLMProvider, ProviderPool, parse_json

logger = logging.getLogger(__name__)

T = TypeVar("T")
ModelT = TypeVar("ModelT", bound=BaseModel)

TASKS = ("extract", "score", "writer")


class CompletionClient(Protocol):
    def complete(self, *, task: str, prompt: str, system: str = "") -> str: ...


@dataclass(slots=True)
class StructuredResult(Generic[T]):
    """Outcome of a structured completion: a validated value or the reason there is none."""

    value: T | None = None
    error: str = ""
    raw_text: str = ""

    @property
    def ok(self) -> bool:
        return self.value is not None and not self.error

    def unwrap(self, error_cls: type[UpstreamError] = UpstreamError) -> T:
        if self.value is None or self.error:
            raise error_cls(self.error or "completion returned no value")
        return self.value


class LLMRouter:
    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self.pool = ProviderPool(self.settings)

    def complete(self, *, task: str, prompt: str, system: str = "") -> str:
        model = self._model_for(task)
        errors: list[str] = []

        for provider in self._providers_for(task):
            if not provider.is_configured:
                continue
            try:
                response = provider.complete_text(
                    model=self._model_for_provider(provider, model),
                    prompt=prompt,
                    system=system,
                )
                return response.content
            except Exception as exc:
                logger.warning("LLM call failed task=%s provider=%s error=%s", task, provider.config.name, exc)
                errors.append(f"{provider.config.name}: {exc}")

        if not errors:
            raise UpstreamError("no completion provider is configured")
        raise UpstreamError("completion failed (" + "; ".join(errors) + ")")

    def _model_for(self, task: str) -> str:
        return {
            "extract": self.settings.openai_model_extractor,
            "score": self.settings.openai_model_scorer,
            "writer": self.settings.openai_model_writer,
        }.get(task, self.settings.openai_model_writer)

    def _model_for_provider(self, provider: LLMProvider, model: str) -> str:
        if provider.config.name == "local":
            return self.settings.local_llm_model
        return model

    def _providers_for(self, task: str) -> list[LLMProvider]:
        provider_name = {
            "extract": self.settings.llm_router_extract_provider,
            "score": self.settings.llm_router_score_provider,
            "writer": self.settings.llm_router_writer_provider,
        }.get(task, self.settings.llm_router_default)

        if provider_name == "local":
            return [self.pool.local(), self.pool.openai()]
        return [self.pool.openai(), self.pool.local()]


def complete_json(client: CompletionClient, *, task: str, prompt: str, system: str = "") -> StructuredResult[Any]:
    try:
        text = client.complete(task=task, prompt=prompt, system=system)
    except UpstreamError as exc:
        return StructuredResult(error=str(exc))

    try:
        data = parse_json(text)
    except ValueError as exc:
        return StructuredResult(error=str(exc), raw_text=text)
    return StructuredResult(value=data, raw_text=text)


def complete_structured(
    client: CompletionClient,
    schema: type[ModelT],
    *,
    task: str,
    prompt: str,
    system: str = "",
) -> StructuredResult[ModelT]:
    result = complete_json(client, task=task, prompt=prompt, system=system)
    if not result.ok:
        return StructuredResult(error=result.error, raw_text=result.raw_text)

    try:
        value = schema.model_validate(result.value)
    except SchemaValidationError as exc:
        logger.warning("Invalid %s payload from task=%s: %s", schema.__name__, task, exc.errors()[:3])
        return StructuredResult(error=f"invalid {schema.__name__} payload", raw_text=result.raw_text)
    return StructuredResult(value=value, raw_text=result.raw_text)
