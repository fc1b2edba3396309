"""
Gemini-backed content operations.

GeminiContentService implements the collaborator contract consumed by the
generation pipeline:
- research: grounded topic research (history, facts, misconceptions, sources)
- plan: article plan with visual prompts and optional SEO analysis
- stream_content: HTML body as an async stream of text chunks
- generate_image: one Imagen image as a data URL

plus the standalone tools of the writer UI:
- find_keywords: SEO keyword suggestions
- explore_topic_ideas: brainstormed article angles
- repurpose: rewrite an article for a short-form platform

The pipeline wraps research, plan and generate_image in its own retry
executor; the standalone tools retry on their own.
"""
import json
from typing import AsyncIterator, List, Optional

import structlog
from pydantic import ValidationError

from shared.config import GeminiSettings
from shared.gemini_client import GeminiClient
from shared.models import (
    ArticlePlan,
    AuthorProfile,
    KeywordSuggestion,
    LengthOverride,
    Platform,
    RepurposePlatform,
    ResearchData,
    SEOAnalysis,
    TopicIdea,
)

from .errors import MalformedResponseError
from .prompts import (
    ARTICLE_CONTENT_PROMPT,
    ARTICLE_PLAN_PROMPT,
    FIND_KEYWORDS_PROMPT,
    IMAGE_STYLE_PREFIX,
    REGENERATE_LAYOUT_INSTRUCTION,
    REPURPOSE_PROMPT,
    RESEARCH_PROMPT,
    TOPIC_IDEAS_PROMPT,
    build_platform_constraints,
    format_author_profile,
    spelling_instruction,
)
from .retry import execute_with_retry
from .schemas import (
    LLMArticlePlanResponse,
    LLMResearchResponse,
    extract_json_object,
    gemini_list_schema_for,
    gemini_schema_for,
    parse_json,
    validate_list,
    validate_model,
)

logger = structlog.get_logger()

# Research summary sent to the planner is capped to keep prompts small.
MAX_RESEARCH_SUMMARY_CHARS = 4000
MAX_REPURPOSE_CONTENT_CHARS = 12000


class GeminiContentService:
    """
    Content operations over an explicitly constructed GeminiClient.

    Args:
        client: Open GeminiClient.
        settings: Settings (models, retry ceiling, spelling convention).
    """

    def __init__(self, client: GeminiClient, settings: Optional[GeminiSettings] = None):
        self.client = client
        self.settings = settings or client.settings

    @property
    def _spelling(self) -> str:
        return spelling_instruction(self.settings.british_spelling)

    # -------------------------------------------------------------------------
    # Pipeline collaborator contract
    # -------------------------------------------------------------------------

    async def research(self, topic: str) -> ResearchData:
        """
        Research a topic with Google Search grounding.

        Grounded calls cannot use JSON mode, so the JSON object is cut out of
        the text between the first '{' and the last '}'.

        Raises:
            MalformedResponseError: If no valid research object is returned.
            GeminiAPIError: On API failure.
        """
        schema = json.dumps(gemini_schema_for(LLMResearchResponse), indent=2)
        prompt = RESEARCH_PROMPT.format(
            topic=topic,
            spelling_instruction=self._spelling,
            response_schema=schema,
        )

        response = await self.client.generate_content(prompt, use_search=True)

        data = parse_json(extract_json_object(response.text), "research response")
        parsed = validate_model(LLMResearchResponse, data, "research response")

        research = ResearchData(
            history=parsed.history,
            facts=parsed.facts,
            misconceptions=parsed.misconceptions,
            sources=response.sources,
        )

        logger.info(
            "research_complete",
            topic=topic[:50],
            fact_count=len(research.facts),
            misconception_count=len(research.misconceptions),
            source_count=len(research.sources),
        )
        return research

    async def plan(
        self,
        topic: str,
        platform: Platform,
        research: ResearchData,
        profile: AuthorProfile,
        length_override: Optional[LengthOverride] = None,
        seo_keyword: Optional[str] = None,
        regenerate_layout: bool = False,
    ) -> ArticlePlan:
        """
        Plan an article: title, hashtags, links, visual prompts, SEO analysis.

        Required fields (title, visualPrompts) must be present and valid.
        An invalid seoAnalysis is peripheral: it is dropped with a warning.

        Raises:
            MalformedResponseError: If the plan does not match the schema.
            GeminiAPIError: On API failure.
        """
        research_summary = json.dumps(
            research.model_dump(by_alias=True, exclude={"sources"}),
            ensure_ascii=False,
        )[:MAX_RESEARCH_SUMMARY_CHARS]

        prompt = ARTICLE_PLAN_PROMPT.format(
            spelling_instruction=self._spelling,
            topic=topic,
            platform_constraints=build_platform_constraints(platform, length_override),
            author_profile=format_author_profile(profile),
            keyword_line=f'Target Keyword: "{seo_keyword}"' if seo_keyword else "",
            research_summary=research_summary,
            layout_instruction=REGENERATE_LAYOUT_INSTRUCTION if regenerate_layout else "",
        )

        response = await self.client.generate_content(
            prompt,
            json_mode=True,
            response_schema=gemini_schema_for(LLMArticlePlanResponse),
        )

        data = parse_json(response.text, "article plan")
        if not isinstance(data, dict):
            raise MalformedResponseError("The AI article plan was not a JSON object.")

        seo_raw = data.pop("seoAnalysis", None)
        data.pop("seo_analysis", None)

        seo_analysis = None
        if seo_raw is not None:
            try:
                seo_analysis = SEOAnalysis.model_validate(seo_raw)
            except ValidationError as e:
                logger.warning("seo_analysis_dropped", topic=topic[:50], error=str(e)[:200])

        data["seoAnalysis"] = seo_analysis
        data["sources"] = [s.model_dump() for s in research.sources]
        data["seoKeywordUsed"] = seo_keyword

        plan = validate_model(ArticlePlan, data, "article plan")

        logger.info(
            "article_planned",
            title=plan.title[:50],
            visual_count=len(plan.visual_prompts),
            has_seo_analysis=plan.seo_analysis is not None,
            regenerate_layout=regenerate_layout,
        )
        return plan

    async def stream_content(
        self,
        plan: ArticlePlan,
        platform: Platform,
        research: ResearchData,
        profile: AuthorProfile,
        length_override: Optional[LengthOverride] = None,
        regenerate_layout: bool = False,
    ) -> AsyncIterator[str]:
        """Stream the article's HTML body in chunks."""
        plan_json = json.dumps(
            plan.model_dump(by_alias=True, exclude={"sources", "seo_analysis"}),
            ensure_ascii=False,
        )
        prompt = ARTICLE_CONTENT_PROMPT.format(
            spelling_instruction=self._spelling,
            plan=plan_json,
            platform_constraints=build_platform_constraints(platform, length_override),
            author_profile=format_author_profile(profile),
            research=json.dumps(research.model_dump(by_alias=True), ensure_ascii=False),
            layout_instruction=REGENERATE_LAYOUT_INSTRUCTION if regenerate_layout else "",
        )

        async for chunk in self.client.stream_content(prompt):
            yield chunk

    async def generate_image(self, prompt: str) -> str:
        """
        Generate a single editorial image and return it as a data URL.

        Raises:
            MalformedResponseError: If no image came back.
            GeminiAPIError: On API failure.
        """
        predictions = await self.client.generate_image(f"{IMAGE_STYLE_PREFIX}{prompt}")
        if not predictions:
            raise MalformedResponseError("Image generation failed.")

        logger.info("image_generated", prompt=prompt[:50])
        return predictions[0].data_url

    # -------------------------------------------------------------------------
    # Standalone tools
    # -------------------------------------------------------------------------

    async def find_keywords(self, topic: str) -> List[KeywordSuggestion]:
        """Suggest 5-7 primary and secondary SEO keywords for a topic."""

        async def call() -> List[KeywordSuggestion]:
            response = await self.client.generate_content(
                FIND_KEYWORDS_PROMPT.format(topic=topic, spelling_instruction=self._spelling),
                json_mode=True,
                response_schema=gemini_list_schema_for(KeywordSuggestion),
            )
            data = parse_json(response.text, "keyword list")
            return validate_list(KeywordSuggestion, data, "keyword list")

        keywords = await execute_with_retry(
            call, self.settings.max_attempts, label="find_keywords",
        )
        logger.info("keywords_found", topic=topic[:50], count=len(keywords))
        return keywords

    async def explore_topic_ideas(self, topic: str) -> List[TopicIdea]:
        """Brainstorm 5 article ideas (title, angle, keywords) for a broad topic."""

        async def call() -> List[TopicIdea]:
            response = await self.client.generate_content(
                TOPIC_IDEAS_PROMPT.format(topic=topic, spelling_instruction=self._spelling),
                json_mode=True,
                response_schema=gemini_list_schema_for(TopicIdea),
            )
            data = parse_json(response.text, "topic idea list")
            return validate_list(TopicIdea, data, "topic idea list")

        ideas = await execute_with_retry(
            call, self.settings.max_attempts, label="explore_topic_ideas",
        )
        logger.info("topic_ideas_generated", topic=topic[:50], count=len(ideas))
        return ideas

    async def repurpose(
        self,
        title: str,
        content: str,
        platform: RepurposePlatform,
    ) -> str:
        """Rewrite an article for a short-form platform; returns plain text."""

        async def call() -> str:
            response = await self.client.generate_content(
                REPURPOSE_PROMPT.format(
                    platform=platform.value,
                    spelling_instruction=self._spelling,
                    title=title,
                    content=content[:MAX_REPURPOSE_CONTENT_CHARS],
                ),
            )
            if not response.text.strip():
                raise MalformedResponseError("The AI returned an empty repurposed post.")
            return response.text.strip()

        text = await execute_with_retry(
            call, self.settings.max_attempts, label="repurpose",
        )
        logger.info("content_repurposed", platform=platform.value, length=len(text))
        return text
