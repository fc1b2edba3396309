"""Tests for the Gemini-backed content service (generation.llm)."""

import json

import pytest

from generation.errors import MalformedResponseError, RunFailedError
from generation.llm import GeminiContentService
from generation.prompts import BRITISH_SPELLING_INSTRUCTION, IMAGE_STYLE_PREFIX, REGENERATE_LAYOUT_INSTRUCTION
from shared.config import GeminiSettings
from shared.gemini_client import GeminiResponse, ImagePrediction
from shared.models import (
    DEFAULT_AUTHOR_PROFILE,
    KeywordType,
    RepurposePlatform,
    get_platform,
)

from tests.conftest import make_plan, make_research

PLAN_JSON = {
    "title": "The Secret Life of Tea",
    "hashtags": ["#tea"],
    "links": [{"text": "Tea", "url": ""}],
    "visualPrompts": [
        {"placeholder": "[IMAGE_1]", "type": "hero", "prompt": "A teapot"},
    ],
    "seoAnalysis": {
        "score": 82,
        "metaDescription": "All about tea.",
        "relatedKeywords": ["green tea"],
        "readability": {"level": "Grade 8", "notes": "Clear"},
        "checklist": [{"check": "Keyword in title", "status": "Needs Improvement", "recommendation": "Add it"}],
    },
}


@pytest.fixture
def client(mocker):
    client = mocker.MagicMock()
    client.settings = GeminiSettings(api_key="test-key")
    client.generate_content = mocker.AsyncMock()
    client.generate_image = mocker.AsyncMock()
    return client


@pytest.fixture
def content_service(client):
    return GeminiContentService(client)


# -----------------------------------------------------------------------------
# research
# -----------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_research_extracts_json_and_grounding_sources(content_service, client):
    client.generate_content.return_value = GeminiResponse(
        text='Here you go:\n```json\n{"history": "Old.", "facts": ["F"], "misconceptions": ["M"]}\n```',
        sources=[{"uri": "https://a.example", "title": "A"}, {"uri": "https://a.example", "title": "dup"}],
    )

    research = await content_service.research("Tea")

    assert research.history == "Old."
    assert research.facts == ["F"]
    assert [s.uri for s in research.sources] == ["https://a.example"]

    prompt = client.generate_content.call_args.args[0]
    assert '"Tea"' in prompt
    assert BRITISH_SPELLING_INSTRUCTION in prompt
    assert client.generate_content.call_args.kwargs["use_search"] is True


@pytest.mark.asyncio
async def test_research_without_json_object_is_malformed(content_service, client):
    client.generate_content.return_value = GeminiResponse(text="I could not find anything.")

    with pytest.raises(MalformedResponseError, match="No JSON object"):
        await content_service.research("Tea")


@pytest.mark.asyncio
async def test_research_missing_fields_is_malformed(content_service, client):
    client.generate_content.return_value = GeminiResponse(text='{"history": "Old."}')

    with pytest.raises(MalformedResponseError):
        await content_service.research("Tea")


@pytest.mark.asyncio
async def test_spelling_instruction_can_be_disabled(client):
    settings = GeminiSettings(api_key="test-key", british_spelling=False)
    content_service = GeminiContentService(client, settings)
    client.generate_content.return_value = GeminiResponse(
        text='{"history": "Old.", "facts": [], "misconceptions": []}',
    )

    await content_service.research("Tea")

    assert BRITISH_SPELLING_INSTRUCTION not in client.generate_content.call_args.args[0]


# -----------------------------------------------------------------------------
# plan
# -----------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_plan_validates_and_copies_research_sources(content_service, client):
    client.generate_content.return_value = GeminiResponse(text=json.dumps(PLAN_JSON))
    research = make_research()

    plan = await content_service.plan(
        "Tea",
        get_platform("Medium Story"),
        research,
        DEFAULT_AUTHOR_PROFILE,
        seo_keyword="green tea",
    )

    assert plan.title == "The Secret Life of Tea"
    assert plan.links[0].url == "#"
    assert plan.visual_prompts[0].visual_type == "hero"
    assert plan.seo_analysis.score == 82
    assert plan.seo_analysis.checklist[0].status.value == "Needs Improvement"
    assert plan.sources == research.sources
    assert plan.seo_keyword_used == "green tea"

    kwargs = client.generate_content.call_args.kwargs
    assert kwargs["json_mode"] is True
    assert kwargs["response_schema"]["type"] == "object"
    prompt = client.generate_content.call_args.args[0]
    assert 'Target Keyword: "green tea"' in prompt
    assert "Approximately 1500 words" in prompt
    assert REGENERATE_LAYOUT_INSTRUCTION not in prompt


@pytest.mark.asyncio
async def test_plan_drops_invalid_seo_analysis(content_service, client):
    data = dict(PLAN_JSON, seoAnalysis={"score": "very high"})
    client.generate_content.return_value = GeminiResponse(text=json.dumps(data))

    plan = await content_service.plan("Tea", get_platform("Medium Story"), make_research(), DEFAULT_AUTHOR_PROFILE)

    assert plan.seo_analysis is None
    assert plan.seo_keyword_used is None


@pytest.mark.asyncio
async def test_plan_without_visual_prompts_is_malformed(content_service, client):
    data = {k: v for k, v in PLAN_JSON.items() if k != "visualPrompts"}
    client.generate_content.return_value = GeminiResponse(text=json.dumps(data))

    with pytest.raises(MalformedResponseError):
        await content_service.plan("Tea", get_platform("Medium Story"), make_research(), DEFAULT_AUTHOR_PROFILE)


@pytest.mark.asyncio
async def test_plan_with_duplicate_placeholders_is_malformed(content_service, client):
    visual = {"placeholder": "[IMAGE_1]", "type": "image", "prompt": "x"}
    data = dict(PLAN_JSON, visualPrompts=[visual, visual])
    client.generate_content.return_value = GeminiResponse(text=json.dumps(data))

    with pytest.raises(MalformedResponseError):
        await content_service.plan("Tea", get_platform("Medium Story"), make_research(), DEFAULT_AUTHOR_PROFILE)


@pytest.mark.asyncio
async def test_plan_rejects_non_object_json(content_service, client):
    client.generate_content.return_value = GeminiResponse(text="[1, 2]")

    with pytest.raises(MalformedResponseError):
        await content_service.plan("Tea", get_platform("Medium Story"), make_research(), DEFAULT_AUTHOR_PROFILE)


@pytest.mark.asyncio
async def test_regenerated_plan_asks_for_new_layout(content_service, client):
    client.generate_content.return_value = GeminiResponse(text=json.dumps(PLAN_JSON))

    await content_service.plan(
        "Tea", get_platform("Medium Story"), make_research(), DEFAULT_AUTHOR_PROFILE, regenerate_layout=True,
    )

    assert REGENERATE_LAYOUT_INSTRUCTION in client.generate_content.call_args.args[0]


# -----------------------------------------------------------------------------
# stream_content / generate_image
# -----------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_stream_content_relays_client_chunks(content_service, client):
    prompts = []

    async def fake_stream(prompt):
        prompts.append(prompt)
        for chunk in ("<p>A</p>", "<p>B</p>"):
            yield chunk

    client.stream_content = fake_stream

    chunks = [
        chunk async for chunk in content_service.stream_content(
            make_plan(), get_platform("LinkedIn Article"), make_research(), DEFAULT_AUTHOR_PROFILE,
        )
    ]

    assert chunks == ["<p>A</p>", "<p>B</p>"]
    assert "[IMAGE_1]" in prompts[0]
    assert "Approximately 700 words" in prompts[0]


@pytest.mark.asyncio
async def test_generate_image_returns_data_url(content_service, client):
    client.generate_image.return_value = [ImagePrediction(mime_type="image/jpeg", data="QUJD")]

    url = await content_service.generate_image("A teapot")

    assert url == "data:image/jpeg;base64,QUJD"
    assert client.generate_image.call_args.args[0] == f"{IMAGE_STYLE_PREFIX}A teapot"


@pytest.mark.asyncio
async def test_generate_image_without_predictions_is_malformed(content_service, client):
    client.generate_image.return_value = []

    with pytest.raises(MalformedResponseError, match="Image generation failed"):
        await content_service.generate_image("A teapot")


# -----------------------------------------------------------------------------
# Standalone tools
# -----------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_find_keywords(content_service, client):
    client.generate_content.return_value = GeminiResponse(text=json.dumps([
        {"keyword": "tea history", "type": "Primary", "intent": "Informational"},
        {"keyword": "best loose leaf tea uk", "type": "Secondary (long-tail)", "intent": "Commercial"},
    ]))

    keywords = await content_service.find_keywords("Tea")

    assert [k.type for k in keywords] == [KeywordType.PRIMARY, KeywordType.SECONDARY]
    assert client.generate_content.call_args.kwargs["response_schema"]["type"] == "array"


@pytest.mark.asyncio
async def test_explore_topic_ideas(content_service, client):
    client.generate_content.return_value = GeminiResponse(text=json.dumps([
        {"title": "Tea and Empire", "angle": "Trade routes", "keywords": ["tea trade"]},
    ]))

    ideas = await content_service.explore_topic_ideas("Tea")

    assert ideas[0].title == "Tea and Empire"


@pytest.mark.asyncio
async def test_malformed_tool_response_is_not_retried(content_service, client):
    client.generate_content.return_value = GeminiResponse(text="not json")

    with pytest.raises(RunFailedError):
        await content_service.explore_topic_ideas("Tea")

    assert client.generate_content.await_count == 1


@pytest.mark.asyncio
async def test_repurpose(content_service, client):
    client.generate_content.return_value = GeminiResponse(text="  1/5 Tea changed the world.  ")

    text = await content_service.repurpose("Tea", "<p>Body</p>", RepurposePlatform.X_THREAD)

    assert text == "1/5 Tea changed the world."
    prompt = client.generate_content.call_args.args[0]
    assert "X (Twitter) Thread" in prompt
    assert "<p>Body</p>" in prompt
