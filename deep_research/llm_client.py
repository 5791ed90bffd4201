"""OpenRouter-backed structured generation.

Every generation in the pipeline asks for one JSON object matching a pydantic
schema. Replies are fenced-code tolerant, validated with ``model_validate``
and retried with feedback until ``settings.llm_max_retries`` is exhausted.
"""
from __future__ import annotations

import json
import time
from typing import Any, Optional, Protocol, TypeVar

from pydantic import BaseModel, ValidationError

from deep_research.config import settings
from deep_research.exceptions import ConfigurationError, ProviderError, StructuredOutputError
from deep_research.services import logger as log_service
from deep_research.services.prompt_store import render_prompt

SchemaT = TypeVar("SchemaT", bound=BaseModel)


class StructuredGenerationService(Protocol):
    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        schema: type[SchemaT],
        *,
        caller: str,
        model: Optional[str] = None,
    ) -> SchemaT: ...


def extract_json_object(raw_text: str) -> dict[str, Any]:
    text = raw_text.strip()
    if text.startswith("```"):
        parts = text.split("```")
        if len(parts) >= 2:
            text = parts[1]
        if text.startswith("json"):
            text = text[4:]
        text = text.strip()
    start = text.find("{")
    end = text.rfind("}")
    if start < 0 or end <= start:
        raise json.JSONDecodeError("object not found", text, 0)
    parsed = json.loads(text[start : end + 1])
    if not isinstance(parsed, dict):
        raise json.JSONDecodeError("not an object", text, 0)
    return parsed


def _temperature_for_model(model: str) -> float:
    # Some OpenAI GPT-5-compatible gateways reject temperature=0.
    if "gpt-5" in (model or "").lower():
        return 1
    return 0.2


class StructuredGenerator:
    """Schema-constrained generation over the OpenAI-compatible chat API."""

    def __init__(
        self,
        openai_client: Any,
        *,
        default_model: str,
        max_retries: int = 2,
        max_tokens: int = 4096,
    ):
        self._client = openai_client
        self.default_model = default_model
        self.max_retries = max(int(max_retries), 0)
        self.max_tokens = max_tokens

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        schema: type[SchemaT],
        *,
        caller: str,
        model: Optional[str] = None,
    ) -> SchemaT:
        used_model = model or self.default_model
        schema_json = json.dumps(schema.model_json_schema())
        messages: list[dict[str, str]] = [
            {"role": "system", "content": system_prompt},
            {
                "role": "user",
                "content": user_prompt
                + "\n"
                + render_prompt("structured.json_instruction", schema_json=schema_json),
            },
        ]

        attempts = self.max_retries + 1
        last_problem = ""
        last_text = ""
        for attempt in range(1, attempts + 1):
            text = await self._complete(used_model, messages, caller=caller)
            last_text = text
            try:
                return schema.model_validate(extract_json_object(text))
            except (json.JSONDecodeError, ValidationError) as exc:
                last_problem = str(exc)
                log_service.log_event(
                    event_type="structured_output_invalid",
                    message=f"{caller} reply failed {schema.__name__} validation",
                    attempt=attempt,
                    attempts=attempts,
                    error=last_problem[:500],
                )
                messages = messages + [
                    {"role": "assistant", "content": text},
                    {
                        "role": "user",
                        "content": render_prompt(
                            "structured.retry_feedback", problem=last_problem[:1500]
                        ),
                    },
                ]

        raise StructuredOutputError(
            f"{caller}: no valid {schema.__name__} after {attempts} attempts: {last_problem[:300]}",
            attempts=attempts,
            raw_text=last_text,
        )

    async def _complete(self, model: str, messages: list[dict[str, str]], *, caller: str) -> str:
        t0 = time.monotonic()
        try:
            response = await self._client.chat.completions.create(
                model=model,
                messages=messages,
                max_tokens=self.max_tokens,
                temperature=_temperature_for_model(model),
                response_format={"type": "json_object"},
            )
        except Exception as exc:
            log_service.log_llm_call(
                model=model,
                caller=caller,
                duration_ms=int((time.monotonic() - t0) * 1000),
                status="error",
                error=str(exc),
            )
            raise ProviderError(f"Generation call failed for {caller}: {exc}") from exc

        usage = getattr(response, "usage", None)
        log_service.log_llm_call(
            model=model,
            caller=caller,
            input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            output_tokens=getattr(usage, "completion_tokens", 0) or 0,
            duration_ms=int((time.monotonic() - t0) * 1000),
        )

        choices = getattr(response, "choices", None) or []
        if not choices:
            return ""
        return getattr(choices[0].message, "content", None) or ""


def get_model() -> str:
    """Get the active OpenRouter model id."""
    if settings.openrouter_model:
        return settings.openrouter_model
    return settings.default_model


def get_strategy_model() -> str:
    return settings.strategy_model.strip() or get_model()


def get_report_model() -> str:
    return settings.report_model.strip() or get_model()


def get_generator() -> StructuredGenerator:
    """Build a generator over OpenRouter via the OpenAI-compatible SDK."""
    from openai import AsyncOpenAI

    if not settings.openrouter_api_key:
        raise ConfigurationError("OPENROUTER_API_KEY is not configured")
    base_url = settings.openrouter_base_url.strip() or "https://openrouter.ai/api/v1"
    openai_client = AsyncOpenAI(
        api_key=settings.openrouter_api_key,
        base_url=base_url,
    )
    return StructuredGenerator(
        openai_client,
        default_model=get_model(),
        max_retries=settings.llm_max_retries,
        max_tokens=settings.llm_max_tokens,
    )


_generator: StructuredGenerator | None = None


def generator() -> StructuredGenerator:
    """Get or create the process-wide generator."""
    global _generator
    if _generator is None:
        _generator = get_generator()
    return _generator
