from __future__ import annotations

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Optional

from campaign_engine.config import settings
from campaign_engine.errors import GenerationDegradation, GenerationFailure
from campaign_engine.llm.client import LLMClient, LLMGenerationParams
from campaign_engine.schemas.intake import IntakeContent, IntakeState

logger = logging.getLogger(__name__)

FALLBACK_HASHTAGS = ["#qualityservice", "#business", "#instagram"]


_DECODER = json.JSONDecoder()


def _hashtag_list(value: Any) -> list[str]:
    if isinstance(value, str):
        return value.split()
    if isinstance(value, list):
        return [str(tag) for tag in value if tag]
    return []


def parse_caption_response(text: str) -> tuple[str, list[str]]:
    """
    Pull the ``{caption, hashtags}`` object out of a model reply.

    Replies often wrap the object in prose or code fences, so every ``{`` is tried as the start
    of a JSON value and the first object carrying a non-empty caption wins.
    """
    if not isinstance(text, str):
        raise ValueError("Model response must be a string")
    start = text.find("{")
    while start != -1:
        try:
            data, _ = _DECODER.raw_decode(text, start)
        except ValueError:
            data = None
        if isinstance(data, dict):
            caption = data.get("caption")
            if isinstance(caption, str) and caption.strip():
                return caption.strip(), _hashtag_list(data.get("hashtags"))
        start = text.find("{", start + 1)
    raise ValueError("No caption object found in model response")


def _service(state: IntakeState) -> str:
    return state.context.service or state.context.topic or state.context.rawIntent or "our services"


def _business(state: IntakeState) -> str:
    return state.businessName or "our business"


def fallback_caption(state: IntakeState) -> tuple[str, list[str]]:
    caption = (
        f"Experience top-tier {_service(state)} with {_business(state)}. "
        "Quality you can trust. Contact us today!"
    )
    return caption, list(FALLBACK_HASHTAGS)


def _call_to_action(state: IntakeState) -> str:
    if state.assets.websiteUrl:
        return f"Visit {state.assets.websiteUrl}"
    if state.assets.phone:
        return f"Call {state.assets.phone}"
    return "DM for details"


def build_caption_prompt(state: IntakeState) -> str:
    return f"""
Act as a world-class social media copywriter for Instagram.

Business: {_business(state)}
Service: {_service(state)}
Operator notes: {state.context.rawIntent or "none"}

REQUIRED STRUCTURE:
{_business(state)} - {_service(state)}
{_call_to_action(state)}
#hashtags

RULES:
- Never use "your business" or "your Instagram account".
- Tone: professional, exciting, branded. Use first-person plural ("We", "Our").
- Output JSON only.

OUTPUT FORMAT (JSON):
{{"caption": "the full caption text", "hashtags": ["#tag1", "#tag2", "#tag3"]}}
""".strip()


def build_image_prompt(state: IntakeState) -> str:
    if state.assets.source in ("state", "stored") and state.assets.logoUrl:
        logo = "Place the business logo in the top-left corner."
    else:
        logo = f'Place the text "{_business(state)}" in the top-left corner as a logo.'
    if state.assets.footer:
        footer = f'Create a distinct, high-contrast bottom footer strip containing the text: "{state.assets.footer}".'
    else:
        footer = "Do NOT include a footer strip. The bottom area must be clean."
    category = state.businessCategory or "Business"
    return f"""
Create a professional Instagram post image for a {category} business specializing in {_service(state)}.

Key elements:
- Service focus: {_service(state)} (visuals must clearly depict this).
- Operator notes: {state.context.rawIntent or "none"}

Layout:
1. Top-left: {logo}
2. Footer: {footer}
3. Style: modern, clean, professional, suitable for social media.
4. Text: no extra text other than the logo and footer.
""".strip()


class CreativeGenerator:
    def __init__(self, llm: Optional[LLMClient] = None, *, caption_model: Optional[str] = None) -> None:
        self.llm = llm or LLMClient()
        self.caption_model = caption_model or settings.CAPTION_MODEL

    def generate_caption(self, state: IntakeState) -> tuple[str, list[str]]:
        """Caption and hashtags. Never raises: any failure degrades to the templated caption."""
        try:
            text = self.llm.generate_text(
                build_caption_prompt(state),
                LLMGenerationParams(model=self.caption_model),
            )
            return parse_caption_response(text)
        except Exception as exc:
            degradation = GenerationDegradation(f"Caption generation failed: {exc}")
            logger.warning(
                "Caption generation degraded to fallback",
                extra={"business": state.businessName, "error": degradation.message},
            )
            return fallback_caption(state)

    def generate_image(self, state: IntakeState) -> tuple[str, str]:
        prompt = build_image_prompt(state)
        try:
            image = self.llm.generate_image(prompt)
        except Exception as exc:
            logger.exception("Image generation failed", extra={"business": state.businessName})
            raise GenerationFailure("Failed to generate image. Please try again.") from exc
        return image.url, prompt

    def generate(self, state: IntakeState) -> IntakeContent:
        """Run caption and image generation concurrently and wait for both."""
        with ThreadPoolExecutor(max_workers=2) as executor:
            caption_future = executor.submit(self.generate_caption, state)
            image_future = executor.submit(self.generate_image, state)
            caption, hashtags = caption_future.result()
            image_url, image_prompt = image_future.result()
        return IntakeContent(caption=caption, hashtags=hashtags, imageUrl=image_url, imagePrompt=image_prompt)


def compose_preview(state: IntakeState) -> str:
    content = state.content
    if not content.imageUrl or not content.caption:
        return "Preview not available. Content generation incomplete."

    if state.assets.source in ("state", "stored") and state.assets.logoUrl:
        logo = "Business Logo (Image)"
    else:
        logo = f'Text Logo ("{_business(state)}")'
    footer = state.assets.footer or "None"
    hashtags = " ".join(content.hashtags) if content.hashtags else "None"

    return "\n".join(
        [
            "**Post Preview**",
            "",
            "**Image Details:**",
            f"[View Generated Image]({content.imageUrl})",
            f"- **Logo Source:** {logo}",
            f"- **Footer Content:** {footer}",
            f"- **Visual Theme:** {_service(state)} for {state.businessCategory or 'Business'}",
            "",
            "**Caption:**",
            content.caption,
            "",
            "**Hashtags:**",
            hashtags,
            "",
            "---",
            "**Ready to publish?** Reply 'yes' to publish, or tell me what to change.",
        ]
    )
