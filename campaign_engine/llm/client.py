from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from anthropic import Anthropic
import google.generativeai as genai
from openai import OpenAI

from campaign_engine.config import settings


class LLMClientConfigError(Exception):
    pass


logger = logging.getLogger(__name__)
_MAX_RETRIES = 2


@dataclass
class LLMGenerationParams:
    model: str
    max_tokens: Optional[int] = None
    temperature: float = 0.7


@dataclass
class GeneratedImage:
    url: str
    revised_prompt: Optional[str] = None


class LLMClient:
    """
    Lightweight wrapper for the generation backends used by creative generation.
    Routes text calls to the provider matching the requested model name.
    """

    def __init__(self, default_model: Optional[str] = None) -> None:
        self.default_model = default_model or settings.CAPTION_MODEL
        self._gemini_configured = False
        self._anthropic_client: Optional[Anthropic] = None
        self._openai_client: Optional[OpenAI] = None

    def generate_text(self, prompt: str, params: Optional[LLMGenerationParams] = None) -> str:
        model = params.model if params and params.model else self.default_model
        if self._is_openai_model(model):
            return self._generate_with_openai(prompt, model, params)
        if model.startswith("claude"):
            return self._generate_with_anthropic(prompt, model, params)
        return self._generate_with_gemini(prompt, model, params)

    def generate_image(self, prompt: str, *, model: Optional[str] = None, size: Optional[str] = None) -> GeneratedImage:
        client = self._get_openai_client()
        response = client.images.generate(
            model=model or settings.IMAGE_MODEL,
            prompt=prompt,
            n=1,
            size=size or settings.IMAGE_SIZE,
        )
        data = getattr(response, "data", None) or []
        url = getattr(data[0], "url", None) if data else None
        if not url:
            raise RuntimeError("Image generation returned no image URL")
        return GeneratedImage(url=url, revised_prompt=getattr(data[0], "revised_prompt", None))

    def _is_openai_model(self, model: str) -> bool:
        lower = model.lower()
        prefixes = ("gpt-", "chatgpt-", "o1", "o3", "o4", "omni-")
        return any(lower.startswith(prefix) for prefix in prefixes)

    def _get_openai_client(self) -> OpenAI:
        if not settings.OPENAI_API_KEY:
            raise LLMClientConfigError("OPENAI_API_KEY not configured")
        if not self._openai_client:
            self._openai_client = OpenAI(
                api_key=settings.OPENAI_API_KEY,
                timeout=float(settings.LLM_REQUEST_TIMEOUT_SECONDS),
                max_retries=_MAX_RETRIES,
            )
        return self._openai_client

    def _generate_with_openai(self, prompt: str, model: str, params: Optional[LLMGenerationParams]) -> str:
        client = self._get_openai_client()
        request_kwargs = {
            "model": model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": params.temperature if params else 0.7,
        }
        if params and params.max_tokens:
            request_kwargs["max_tokens"] = params.max_tokens
        response = client.chat.completions.create(**request_kwargs)
        text = response.choices[0].message.content if response.choices else None
        if not text:
            raise RuntimeError(f"OpenAI returned no content for model {model}")
        return text

    def _generate_with_gemini(self, prompt: str, model: str, params: Optional[LLMGenerationParams]) -> str:
        if not settings.GEMINI_API_KEY:
            raise LLMClientConfigError("GEMINI_API_KEY not configured")

        if not self._gemini_configured:
            genai.configure(api_key=settings.GEMINI_API_KEY)
            self._gemini_configured = True

        generation_config = {
            "temperature": params.temperature if params else 0.7,
        }
        if params and params.max_tokens:
            generation_config["max_output_tokens"] = params.max_tokens

        model_name = model if model.startswith("models/") else f"models/{model}"
        model_client = genai.GenerativeModel(model_name=model_name, generation_config=generation_config)
        try:
            result = model_client.generate_content(
                prompt, request_options={"timeout": settings.LLM_REQUEST_TIMEOUT_SECONDS}
            )
        except Exception:
            logger.exception("Gemini generation failed", extra={"model": model})
            raise
        text = None
        if result and getattr(result, "candidates", None):
            first = result.candidates[0]
            if first and first.content and getattr(first.content, "parts", None):
                parts = first.content.parts
                if parts and getattr(parts[0], "text", None):
                    text = parts[0].text
        if not text and hasattr(result, "text"):
            text = result.text
        if not text:
            raise RuntimeError(f"Gemini returned no content for model {model}")
        return text

    def _generate_with_anthropic(self, prompt: str, model: str, params: Optional[LLMGenerationParams]) -> str:
        if not settings.ANTHROPIC_API_KEY:
            raise LLMClientConfigError("ANTHROPIC_API_KEY not configured")

        if not self._anthropic_client:
            self._anthropic_client = Anthropic(api_key=settings.ANTHROPIC_API_KEY)

        response = self._anthropic_client.messages.create(
            model=model,
            max_tokens=params.max_tokens if params and params.max_tokens else 1024,
            temperature=params.temperature if params else 0.7,
            messages=[{"role": "user", "content": prompt}],
            timeout=settings.LLM_REQUEST_TIMEOUT_SECONDS,
        )
        text_parts = [content.text for content in response.content if getattr(content, "text", None)]
        if not text_parts:
            raise RuntimeError(f"Anthropic returned no content for model {model}")
        return "".join(text_parts)
