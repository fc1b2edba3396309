"""
Prompt templates for Gemini-backed nodes.

All prompt constants used by the generator are centralized here
for easier maintenance and iteration. Templates are filled with
str.format; literal braces are doubled.
"""
import json
from typing import Optional

from shared.models import AuthorProfile, LengthOverride, LengthUnit, Platform

BRITISH_SPELLING_INSTRUCTION = (
    "CRITICAL: You MUST use British English spelling throughout (e.g., use 's' instead of 'z' "
    "in words like 'optimise', 'analysing', 'organise', 'synthesising'). "
    "Do not use American English conventions."
)

IMAGE_STYLE_PREFIX = "High-end editorial photography, cinematic lighting, 8k: "


# =============================================================================
# RESEARCH
# =============================================================================

RESEARCH_PROMPT = """Your task is to research the topic: "{topic}". Use Google Search to find up-to-date, factual information.
{spelling_instruction}
Provide a detailed breakdown covering its history, quirky and little-known facts, and common misconceptions or urban myths.

Your final output MUST be a single, valid JSON object that adheres to the following schema.
Schema:
{response_schema}"""


# =============================================================================
# PLANNING
# =============================================================================

ARTICLE_PLAN_PROMPT = """You are an expert blog post writer and SEO strategist. Create a detailed plan for an article.
{spelling_instruction}
Topic: "{topic}"
Platform Constraints: {platform_constraints}
Author Profile: {author_profile}
{keyword_line}
Research Summary: {research_summary}
{layout_instruction}
OUTPUT REQUIREMENTS:
- Provide title, hashtags, links, and visualPrompts.
- Each visualPrompt needs a unique placeholder ID in square brackets (e.g. "[IMAGE_1]"), a type and a descriptive image prompt.
- If a target keyword is present, provide a full seoAnalysis object (score 0-100, metaDescription, relatedKeywords, readability, checklist with status Pass, Needs Improvement or Fail)."""


# =============================================================================
# CONTENT
# =============================================================================

ARTICLE_CONTENT_PROMPT = """Write the main HTML content for an article.
{spelling_instruction}
Plan: {plan}
Platform: {platform_constraints}
Profile: {author_profile}
Research: {research}
{layout_instruction}
RULES:
- Output raw HTML ONLY. No tags like <html>, <head> or <body>.
- Use <p> tags for every paragraph.
- Use <h2>/<h3> for headings.
- Strategic use of <blockquote class="pull-quote">, lists, and two-column divs (<div class="two-col-container">).
- Place placeholders for images exactly where appropriate using <img src="[ID]" class="img-float-left" /> style tags, where [ID] is the placeholder of a visualPrompt from the plan."""

REGENERATE_LAYOUT_INSTRUCTION = (
    "REGENERATE LAYOUT: Create a completely new layout structure, materially "
    "different from any previous version of this article."
)


# =============================================================================
# SUPPLEMENTARY TOOLS
# =============================================================================

FIND_KEYWORDS_PROMPT = """You are an expert SEO strategist. For the topic "{topic}", generate a list of 5-7 keyword suggestions.
{spelling_instruction}
- Include 2-3 "Primary" keywords that are broad and have high traffic potential.
- Include 3-4 "Secondary" (long-tail) keywords that are more specific.
- For each keyword, determine the likely user "intent" (e.g., Informational, Commercial, Navigational)."""

TOPIC_IDEAS_PROMPT = """You are an expert content strategist and SEO specialist. Brainstorm 5 creative and engaging article ideas based on the broad topic: "{topic}".
{spelling_instruction}
For each idea, provide a catchy, SEO-friendly title, a unique angle or synopsis, and a list of 3-5 relevant keywords."""

REPURPOSE_PROMPT = """You are a social media growth expert. Repurpose the following article for {platform}.
{spelling_instruction}

Article Title: "{title}"
Article Content (HTML): {content}

GUIDELINES:
- For "X (Twitter) Thread": Create a compelling 5-7 tweet thread. Start with a hook. Use numbered tweets (1/n).
- For "LinkedIn Post": Create a professional, insightful post with bullet points and a clear call to action. Focus on industry authority.
- For "Instagram Caption": Create a vibrant, engaging caption with line breaks for readability. Include relevant emojis and a block of 5-10 trending hashtags at the end.

Output the raw text of the post only. Do not include meta-commentary."""


# =============================================================================
# BUILDERS
# =============================================================================

def spelling_instruction(enabled: bool) -> str:
    return BRITISH_SPELLING_INSTRUCTION if enabled else ""


def build_platform_constraints(
    platform: Platform,
    length_override: Optional[LengthOverride] = None,
) -> str:
    """
    Describe the length constraints for a platform.

    A length override with at least one positive bound replaces the
    platform's own ceilings.
    """
    if length_override is not None and length_override.is_set:
        label = "Word" if length_override.unit == LengthUnit.WORDS else "Character"
        low = length_override.min or 0
        high = length_override.max or 0

        lines = [f"- Platform: {platform.name} (with custom length)"]
        if low > 0 and high > 0 and low <= high:
            lines.append(f"- {label} Count: Between {low} and {high}.")
        elif high > 0:
            lines.append(f"- Maximum {label} Count: {high}.")
        elif low > 0:
            lines.append(f"- Minimum {label} Count: {low}.")
        return "\n".join(lines)

    lines = [f"- Platform: {platform.name}"]
    if platform.word_count:
        lines.append(f"- Word Count Limit: Approximately {platform.word_count} words")
    if platform.char_count:
        lines.append(f"- Character Count Limit: {platform.char_count} characters")
    return "\n".join(lines)


def format_author_profile(profile: AuthorProfile) -> str:
    return json.dumps(profile.model_dump(by_alias=True), ensure_ascii=False)
