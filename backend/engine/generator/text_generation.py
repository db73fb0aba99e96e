from typing import Optional, Protocol
import logging

import openai

from api.schemas.generation import InferenceResult
from core.config import Settings
from core.errors import GenerationFailure, NotImplementedFeature

# Configure logger
logger = logging.getLogger(__name__)

FINISH_REASONS = {"stop": "stop", "length": "length"}


class TextGenerator(Protocol):
    """Anything that turns a prompt into generated text."""

    model_name: Optional[str]

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> InferenceResult:
        ...


class OpenRouterTextGenerator:
    """Text generation through an OpenAI-compatible chat completions endpoint."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str,
        base_url: str = "https://openrouter.ai/api/v1",
        max_tokens: int = 4000,
        temperature: float = 0.7,
        client: Optional[openai.AsyncOpenAI] = None,
    ):
        self.model_name = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.client = client

        if self.client is None and api_key:
            self.client = openai.AsyncOpenAI(
                base_url=base_url,
                api_key=api_key,
                default_headers={
                    "HTTP-Referer": "https://notion-template-generator.dev",
                    "X-Title": "Notion Template Generator",
                },
            )
        elif self.client is None:
            logger.warning("No OpenRouter API key configured; generation will fail until one is set")

    @property
    def available(self) -> bool:
        return self.client is not None

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> InferenceResult:
        if self.client is None:
            raise GenerationFailure("No text generation model configured (set OPENROUTER_API_KEY)")

        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        try:
            response = await self.client.chat.completions.create(
                model=self.model_name,
                messages=messages,
                max_tokens=max_tokens or self.max_tokens,
                temperature=self.temperature if temperature is None else temperature,
            )
        except openai.OpenAIError as e:
            logger.error(f"Text generation call failed: {str(e)}")
            raise GenerationFailure(f"Text generation failed: {str(e)}") from e

        if not response.choices:
            raise GenerationFailure("Text generation returned no choices")

        choice = response.choices[0]
        text = choice.message.content or ""
        tokens_used = response.usage.total_tokens if response.usage else 0
        finish_reason = FINISH_REASONS.get(choice.finish_reason or "stop", "error")

        logger.info(f"Generated {len(text)} chars ({tokens_used} tokens, finish_reason={finish_reason})")
        return InferenceResult(
            text=text,
            tokens_used=tokens_used,
            finish_reason=finish_reason,
            model=getattr(response, "model", None) or self.model_name,
        )


class LocalModelTextGenerator:
    """Placeholder for on-device GGUF inference, which this service does not ship."""

    def __init__(self, model: str):
        self.model_name = model

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> InferenceResult:
        raise NotImplementedFeature("Local model inference is not available in this deployment")


def build_text_generator(settings: Settings) -> TextGenerator:
    provider = settings.text_generation_provider
    if provider == "openrouter":
        return OpenRouterTextGenerator(
            api_key=settings.openrouter_api_key,
            model=settings.generation_model,
            base_url=settings.openrouter_base_url,
            max_tokens=settings.max_tokens,
            temperature=settings.temperature,
        )
    if provider == "local":
        return LocalModelTextGenerator(settings.generation_model)
    raise NotImplementedFeature(f"Unknown text generation provider: {provider}")
