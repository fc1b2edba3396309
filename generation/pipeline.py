"""
Generation pipeline orchestration.

A run moves through a fixed sequence of steps:

    Researching -> Planning -> Streaming -> Rendering Visuals -> Finalizing

ending in Complete, or in Failed at whichever step was in progress. After
every transition (and every streamed chunk) a deep copy of the pipeline
state is published to subscribers. Regeneration runs reuse cached research
for the topic and ask for a different layout.

The pipeline owns its state for the duration of a run; subscribers only
ever see copies.
"""
import asyncio
from typing import (
    AsyncIterator,
    Awaitable,
    Callable,
    Dict,
    List,
    Optional,
    Protocol,
)

import structlog

from shared.models import (
    Article,
    ArticlePlan,
    AuthorProfile,
    DEFAULT_AUTHOR_PROFILE,
    GenerationRequest,
    GenerationState,
    GenerationStep,
    LengthOverride,
    PipelinePhase,
    Platform,
    ResearchData,
    STEP_TITLES,
    StepStatus,
    get_platform,
    new_article_id,
)

from .errors import InvalidRequestError, classify_failure
from .images import apply_image_substitutions, render_visuals
from .retry import DEFAULT_MAX_ATTEMPTS, execute_with_retry

logger = structlog.get_logger()

# Step indexes, aligned with STEP_TITLES.
RESEARCH_STEP = 0
PLAN_STEP = 1
CONTENT_STEP = 2
VISUALS_STEP = 3
FINALIZE_STEP = 4

STEP_PHASES = [
    PipelinePhase.RESEARCHING,
    PipelinePhase.PLANNING,
    PipelinePhase.STREAMING,
    PipelinePhase.RENDERING_VISUALS,
    PipelinePhase.FINALIZING,
]

Listener = Callable[[GenerationState], None]


class ContentService(Protocol):
    """Collaborator the pipeline calls for every AI operation."""

    async def research(self, topic: str) -> ResearchData: ...

    async def plan(
        self,
        topic: str,
        platform: Platform,
        research: ResearchData,
        profile: AuthorProfile,
        length_override: Optional[LengthOverride] = None,
        seo_keyword: Optional[str] = None,
        regenerate_layout: bool = False,
    ) -> ArticlePlan: ...

    def stream_content(
        self,
        plan: ArticlePlan,
        platform: Platform,
        research: ResearchData,
        profile: AuthorProfile,
        length_override: Optional[LengthOverride] = None,
        regenerate_layout: bool = False,
    ) -> AsyncIterator[str]: ...

    async def generate_image(self, prompt: str) -> str: ...


def research_cache_key(topic: str) -> str:
    return " ".join(topic.split()).lower()


class GenerationPipeline:
    """
    Orchestrates one generation run at a time.

    Args:
        service: ContentService implementation (GeminiContentService in
            production, a fake in tests).
        max_attempts: Retry ceiling for research, plan and image calls.
        sleep: Awaitable sleep used for retry backoff.
        id_factory: Produces article ids.
    """

    def __init__(
        self,
        service: ContentService,
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        id_factory: Callable[[], str] = new_article_id,
    ):
        self.service = service
        self.max_attempts = max_attempts
        self._sleep = sleep
        self._id_factory = id_factory

        self._state = GenerationState()
        self._listeners: List[Listener] = []
        self._research_cache: Dict[str, ResearchData] = {}
        self._last_request: Optional[GenerationRequest] = None
        self._running = False

    # -------------------------------------------------------------------------
    # Observation
    # -------------------------------------------------------------------------

    @property
    def state(self) -> GenerationState:
        """Deep copy of the current state."""
        return self._state.model_copy(deep=True)

    @property
    def is_running(self) -> bool:
        return self._running

    def cached_research(self, topic: str) -> Optional[ResearchData]:
        cached = self._research_cache.get(research_cache_key(topic))
        return cached.model_copy(deep=True) if cached else None

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a listener for state snapshots.

        Returns a function that unsubscribes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self) -> None:
        snapshot = self._state.model_copy(deep=True)
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.error("pipeline_listener_failed", error=str(e))

    # -------------------------------------------------------------------------
    # Step bookkeeping
    # -------------------------------------------------------------------------

    def _begin_step(self, index: int) -> None:
        """Complete every earlier step and mark index in progress."""
        for earlier in self._state.steps[:index]:
            earlier.status = StepStatus.COMPLETE
        self._state.steps[index].status = StepStatus.IN_PROGRESS
        self._state.phase = STEP_PHASES[index]
        logger.info("pipeline_step_started", step=STEP_TITLES[index])
        self._publish()

    def _current_step(self) -> Optional[int]:
        for index, step in enumerate(self._state.steps):
            if step.status == StepStatus.IN_PROGRESS:
                return index
        return None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def start(self, request: GenerationRequest) -> GenerationState:
        """
        Begin a fresh run for a request.

        Returns the terminal state (phase complete or failed).

        Raises:
            InvalidRequestError: If the topic is empty or a run is active.
        """
        if not request.topic.strip():
            logger.warning("generation_rejected", reason="empty_topic")
            raise InvalidRequestError("Please enter a topic.")
        self._ensure_idle()

        self._last_request = request
        return await self._run(
            topic=request.topic,
            platform=request.platform,
            profile=request.author_profile,
            length_override=request.length_override,
            seo_keyword=request.seo_keyword,
            regenerate=False,
        )

    async def regenerate(
        self,
        prior_article: Article,
        new_platform: Optional[Platform] = None,
    ) -> GenerationState:
        """
        Re-plan, re-write and re-render an already generated article.

        Reuses cached research for the article's topic when available and
        requests a materially different layout. The new article gets a new id.

        Raises:
            InvalidRequestError: If a run is active.
        """
        self._ensure_idle()

        last = self._last_request
        same_topic = last is not None and research_cache_key(last.topic) == research_cache_key(prior_article.topic)

        platform = new_platform
        if platform is None and same_topic:
            platform = last.platform
        if platform is None:
            try:
                platform = get_platform(prior_article.platform_name)
            except KeyError:
                platform = Platform(name=prior_article.platform_name)

        profile = last.author_profile if last is not None else DEFAULT_AUTHOR_PROFILE
        length_override = last.length_override if same_topic else None

        return await self._run(
            topic=prior_article.topic,
            platform=platform,
            profile=profile,
            length_override=length_override,
            seo_keyword=prior_article.seo_keyword_used,
            regenerate=True,
        )

    def _ensure_idle(self) -> None:
        if self._running:
            logger.warning("generation_rejected", reason="run_in_progress")
            raise InvalidRequestError("A generation run is already in progress.")

    # -------------------------------------------------------------------------
    # Run
    # -------------------------------------------------------------------------

    async def _run(
        self,
        topic: str,
        platform: Platform,
        profile: AuthorProfile,
        length_override: Optional[LengthOverride],
        seo_keyword: Optional[str],
        regenerate: bool,
    ) -> GenerationState:
        self._running = True
        self._state = GenerationState(
            phase=PipelinePhase.IDLE,
            steps=[GenerationStep(title=title) for title in STEP_TITLES],
        )

        logger.info(
            "generation_started",
            topic=topic[:50],
            platform=platform.name,
            regenerate=regenerate,
            has_keyword=bool(seo_keyword),
        )

        try:
            research = await self._research(topic, regenerate)

            self._begin_step(PLAN_STEP)
            plan = await execute_with_retry(
                lambda: self.service.plan(
                    topic,
                    platform,
                    research,
                    profile,
                    length_override=length_override,
                    seo_keyword=seo_keyword,
                    regenerate_layout=regenerate,
                ),
                self.max_attempts,
                label="plan",
                sleep=self._sleep,
            )
            self._state.article = Article.from_plan(plan, platform, topic, article_id=self._id_factory())
            self._state.article.seo_keyword_used = seo_keyword or plan.seo_keyword_used

            self._begin_step(CONTENT_STEP)
            await self._stream(plan, platform, research, profile, length_override, regenerate)

            self._begin_step(VISUALS_STEP)
            article = self._state.article
            image_urls = await render_visuals(
                plan.visual_prompts,
                self.service.generate_image,
                max_attempts=self.max_attempts,
                sleep=self._sleep,
            )
            article.content = apply_image_substitutions(article.content, plan.visual_prompts, image_urls)
            article.image_urls = image_urls

            self._begin_step(FINALIZE_STEP)
            article.platform_name = platform.name
            article.topic = topic
            self._state.steps[FINALIZE_STEP].status = StepStatus.COMPLETE
            self._state.phase = PipelinePhase.COMPLETE

            logger.info(
                "generation_complete",
                article_id=article.id,
                title=article.title[:50],
                content_len=len(article.content),
                images_generated=sum(1 for url in image_urls if url),
                images_failed=sum(1 for url in image_urls if not url),
            )
            self._publish()

        except Exception as e:
            self._fail(e)
        finally:
            self._running = False

        return self.state

    async def _research(self, topic: str, regenerate: bool) -> ResearchData:
        key = research_cache_key(topic)
        cached = self._research_cache.get(key)
        if regenerate and cached is not None:
            logger.info("research_cache_hit", topic=topic[:50])
            self._state.steps[RESEARCH_STEP].status = StepStatus.COMPLETE
            return cached

        self._begin_step(RESEARCH_STEP)
        research = await execute_with_retry(
            lambda: self.service.research(topic),
            self.max_attempts,
            label="research",
            sleep=self._sleep,
        )
        self._research_cache[key] = research
        return research

    async def _stream(
        self,
        plan: ArticlePlan,
        platform: Platform,
        research: ResearchData,
        profile: AuthorProfile,
        length_override: Optional[LengthOverride],
        regenerate: bool,
    ) -> None:
        article = self._state.article
        chunk_count = 0
        stream = self.service.stream_content(
            plan,
            platform,
            research,
            profile,
            length_override=length_override,
            regenerate_layout=regenerate,
        )
        async for chunk in stream:
            if not chunk:
                continue
            article.content += chunk
            chunk_count += 1
            self._publish()

        if chunk_count == 0:
            logger.warning("content_stream_empty", article_id=article.id)
        else:
            logger.info("content_streamed", article_id=article.id, chunk_count=chunk_count)

    def _fail(self, error: Exception) -> None:
        failure = classify_failure(error)
        failed_step = self._current_step()
        if failed_step is not None:
            self._state.steps[failed_step].status = StepStatus.ERROR

        self._state.phase = PipelinePhase.FAILED
        self._state.error = failure.message
        self._state.failed_step = failed_step

        logger.error(
            "generation_failed",
            step=STEP_TITLES[failed_step] if failed_step is not None else None,
            kind=failure.kind.value,
            error=str(error)[:500],
        )
        self._publish()
