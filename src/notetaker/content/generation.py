"""Text generation for follow-up emails and social posts via LiteLLM Router.

OpenAI (LLM_MODEL, gpt-4o by default) serves the "content" model group with
Anthropic as fallback when its key is configured. The router is built on
first use so a missing key only fails the calls that need it.
"""

from __future__ import annotations

import structlog
from litellm import Router

from src.notetaker.config import Settings
from src.notetaker.core.errors import ConfigurationError
from src.notetaker.core.monitoring import track_llm_call

logger = structlog.get_logger(__name__)

MODEL_GROUP = "content"
FALLBACK_GROUP = "content-fallback"


class ContentGenerator:
    """Single-turn text generation with an optional system prompt.

    Args:
        settings: Application settings (API keys, model names, temperature).
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._router: Router | None = None

    def _get_router(self) -> Router:
        if self._router is not None:
            return self._router

        settings = self._settings
        if not settings.OPENAI_API_KEY:
            raise ConfigurationError("OPENAI_API_KEY is not set")

        model_list = [{
            "model_name": MODEL_GROUP,
            "litellm_params": {
                "model": settings.LLM_MODEL,
                "api_key": settings.OPENAI_API_KEY,
            },
        }]
        fallbacks = []
        if settings.ANTHROPIC_API_KEY:
            model_list.append({
                "model_name": FALLBACK_GROUP,
                "litellm_params": {
                    "model": settings.LLM_FALLBACK_MODEL,
                    "api_key": settings.ANTHROPIC_API_KEY,
                },
            })
            fallbacks.append({MODEL_GROUP: [FALLBACK_GROUP]})

        self._router = Router(
            model_list=model_list,
            fallbacks=fallbacks,
            num_retries=2,
            timeout=settings.LLM_TIMEOUT,
        )
        return self._router

    async def generate(
        self,
        prompt: str,
        system_prompt: str | None = None,
        purpose: str = "content",
    ) -> str:
        """Generate text for ``prompt``.

        Raises:
            ConfigurationError: If OPENAI_API_KEY is not set.
        """
        router = self._get_router()
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        async with track_llm_call(self._settings.LLM_MODEL, purpose) as usage:
            response = await router.acompletion(
                model=MODEL_GROUP,
                messages=messages,
                temperature=self._settings.LLM_TEMPERATURE,
            )
            if getattr(response, "usage", None):
                usage["prompt_tokens"] = response.usage.prompt_tokens
                usage["completion_tokens"] = response.usage.completion_tokens

        content = response.choices[0].message.content or ""
        logger.info("content.generated", purpose=purpose, chars=len(content))
        return content
