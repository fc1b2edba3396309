"""Shared fixtures: an in-memory ContentService and a recording sleep."""

import asyncio
from typing import Any, Callable, Dict, List, Optional

import pytest

from shared.models import (
    ArticlePlan,
    GenerationRequest,
    ResearchData,
    Source,
    VisualPrompt,
    get_platform,
)

# -----------------------------------------------------------------------------
# Sample data
# -----------------------------------------------------------------------------


def make_research(topic: str = "tea") -> ResearchData:
    return ResearchData(
        history=f"A short history of {topic}.",
        facts=["Fact one.", "Fact two."],
        misconceptions=["Myth one."],
        sources=[Source(uri="https://example.com/a", title="Example A")],
    )


def make_plan(placeholders=("[IMAGE_1]", "[IMAGE_2]")) -> ArticlePlan:
    return ArticlePlan(
        title="The Secret Life of Tea",
        hashtags=["#tea", "#history"],
        links=[{"text": "Tea on Wikipedia", "url": "https://en.wikipedia.org/wiki/Tea"}],
        visual_prompts=[
            VisualPrompt(placeholder=p, visual_type="image", prompt=f"A photo for {p}")
            for p in placeholders
        ],
    )


# -----------------------------------------------------------------------------
# Fake service
# -----------------------------------------------------------------------------


class FakeContentService:
    """
    In-memory ContentService.

    Each operation can be given a list of outcomes; an Exception outcome is
    raised, anything else is returned. The last outcome repeats.
    """

    def __init__(self):
        self.calls: List[tuple] = []
        self.research_outcomes: List[Any] = [make_research()]
        self.plan_outcomes: List[Any] = [make_plan()]
        self.chunks: List[str] = ["<p>A</p>", '<img src="[IMAGE_1]" />', '<img src="[IMAGE_2]" />']
        self.stream_error: Optional[Exception] = None
        # prompt -> list of outcomes; default is a data URL built from the prompt
        self.image_outcomes: Dict[str, List[Any]] = {}
        self.image_delays: Dict[str, float] = {}
        self.plan_kwargs: List[Dict[str, Any]] = []
        self.stream_kwargs: List[Dict[str, Any]] = []

    def _next(self, outcomes: List[Any]) -> Any:
        outcome = outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)

    async def research(self, topic):
        self.calls.append(("research", topic))
        return self._next(self.research_outcomes)

    async def plan(self, topic, platform, research, profile, length_override=None,
                   seo_keyword=None, regenerate_layout=False):
        self.calls.append(("plan", topic))
        self.plan_kwargs.append({
            "platform": platform,
            "research": research,
            "profile": profile,
            "length_override": length_override,
            "seo_keyword": seo_keyword,
            "regenerate_layout": regenerate_layout,
        })
        return self._next(self.plan_outcomes)

    async def stream_content(self, plan, platform, research, profile, length_override=None,
                             regenerate_layout=False):
        self.calls.append(("stream_content", plan.title))
        self.stream_kwargs.append({"platform": platform, "regenerate_layout": regenerate_layout})
        for chunk in self.chunks:
            yield chunk
        if self.stream_error is not None:
            raise self.stream_error

    async def generate_image(self, prompt):
        self.calls.append(("generate_image", prompt))
        delay = self.image_delays.get(prompt)
        if delay:
            await asyncio.sleep(delay)
        outcomes = self.image_outcomes.get(prompt)
        if outcomes is None:
            return f"data:image/jpeg;base64,{prompt.replace(' ', '_')}"
        return self._next(outcomes)


class RecordingSleep:
    """Awaitable sleep stand-in that records delays without waiting."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


# -----------------------------------------------------------------------------
# Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def service() -> FakeContentService:
    return FakeContentService()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def request_factory() -> Callable[..., GenerationRequest]:
    def factory(topic: str = "Tea", **kwargs) -> GenerationRequest:
        kwargs.setdefault("platform", get_platform("Medium Story"))
        return GenerationRequest(topic=topic, **kwargs)

    return factory
