"""
Visual rendering and placeholder substitution.

render_visuals generates every image of a plan concurrently and returns the
results in visual-prompt order; a failed visual yields None instead of
failing the batch. apply_image_substitutions splices the generated images
into the HTML body by replacing each placeholder's src reference.
"""
import asyncio
import html
import re
from typing import Awaitable, Callable, List, Optional, Sequence

import structlog

from shared.models import VisualPrompt

from .retry import DEFAULT_MAX_ATTEMPTS, execute_with_retry

logger = structlog.get_logger()

ALT_TEXT_MAX_LENGTH = 100


def alt_text_for(prompt: str) -> str:
    """Alt text: the first 100 characters of the prompt, attribute-escaped."""
    return html.escape(prompt[:ALT_TEXT_MAX_LENGTH], quote=True)


def substitute_image(body: str, visual: VisualPrompt, image_url: str) -> str:
    """
    Replace src="<placeholder>" (either quote style) with the image data.

    Every occurrence of the placeholder's src reference is replaced and
    given an alt attribute. Text without the reference is returned as is.
    """
    pattern = re.compile(r"src=([\"'])" + re.escape(visual.placeholder) + r"\1")
    replacement = f'src="{image_url}" alt="{alt_text_for(visual.prompt)}"'
    return pattern.sub(lambda _m: replacement, body)


def apply_image_substitutions(
    body: str,
    visual_prompts: Sequence[VisualPrompt],
    image_urls: Sequence[Optional[str]],
) -> str:
    """
    Substitute every generated image into the body.

    image_urls is positionally aligned with visual_prompts; None entries
    leave their placeholder unresolved.
    """
    final_body = body
    for index, visual in enumerate(visual_prompts):
        image_url = image_urls[index] if index < len(image_urls) else None
        if not image_url:
            continue
        updated = substitute_image(final_body, visual, image_url)
        if updated == final_body:
            logger.warning("image_placeholder_not_found", placeholder=visual.placeholder)
        final_body = updated
    return final_body


async def render_visuals(
    visual_prompts: Sequence[VisualPrompt],
    generate: Callable[[str], Awaitable[str]],
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> List[Optional[str]]:
    """
    Generate all images concurrently, each with its own retry.

    Waits for every call to settle. The result is aligned with
    visual_prompts regardless of completion order.
    """

    async def render_one(visual: VisualPrompt) -> str:
        return await execute_with_retry(
            lambda: generate(visual.prompt),
            max_attempts,
            label=f"generate_image:{visual.placeholder}",
            sleep=sleep,
        )

    results = await asyncio.gather(
        *(render_one(v) for v in visual_prompts),
        return_exceptions=True,
    )

    image_urls: List[Optional[str]] = []
    failed = 0
    for visual, result in zip(visual_prompts, results):
        if isinstance(result, asyncio.CancelledError):
            raise result
        if isinstance(result, BaseException):
            failed += 1
            logger.warning(
                "visual_generation_failed",
                placeholder=visual.placeholder,
                error=str(result)[:200],
            )
            image_urls.append(None)
        else:
            image_urls.append(result)

    logger.info(
        "visuals_rendered",
        total=len(visual_prompts),
        generated=len(visual_prompts) - failed,
        failed=failed,
    )
    return image_urls
