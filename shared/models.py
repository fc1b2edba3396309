"""
Data models for the Stratis article generator.

These models describe everything that flows through a generation run:
- Generation inputs (platform, author profile, length override, request)
- AI-produced structures (research, article plan, SEO analysis)
- The final Article artifact and the published pipeline state

Models exchanged with the Gemini API accept the API's camelCase keys as well
as Python snake_case names.
"""
import enum
import uuid
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


def new_article_id() -> str:
    """Return a fresh unique article identifier."""
    return uuid.uuid4().hex


class CamelModel(BaseModel):
    """Base model that reads and writes the API's camelCase keys."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


# =============================================================================
# GENERATION INPUTS
# =============================================================================

class Platform(CamelModel):
    """A target publishing surface and its length ceilings."""
    name: str
    word_count: Optional[int] = None
    char_count: Optional[int] = None


PLATFORMS: List[Platform] = [
    Platform(name="Generic Blog Post", word_count=1000),
    Platform(name="LinkedIn Article", word_count=700),
    Platform(name="Medium Story", word_count=1500),
    Platform(name="X (Twitter) Thread", char_count=280),
    Platform(name="Facebook Post", word_count=500, char_count=63206),
    Platform(name="Instagram Caption", word_count=300, char_count=2200),
    Platform(name="Substack Newsletter", word_count=2000),
    Platform(name="Reddit Post", word_count=1000, char_count=40000),
    Platform(name="Dev.to Article", word_count=1200),
]


def get_platform(name: str) -> Platform:
    """
    Look up a platform from the catalog by name (case-insensitive).

    Raises:
        KeyError: If no platform has that name.
    """
    wanted = name.strip().lower()
    for platform in PLATFORMS:
        if platform.name.lower() == wanted:
            return platform
    raise KeyError(f"Unknown platform: {name}")


class AuthorProfile(CamelModel):
    """Writing voice the article should follow."""
    style: str
    tone: str
    audience: str
    language: str = "British English"


DEFAULT_AUTHOR_PROFILE = AuthorProfile(
    style="Informative and engaging",
    tone="Professional yet approachable",
    audience="General audience with an interest in technology",
    language="British English",
)


class LengthUnit(str, enum.Enum):
    """Unit for a manual length override."""
    WORDS = "words"
    CHARS = "chars"


class LengthOverride(CamelModel):
    """Caller-supplied length bounds that replace the platform ceilings."""
    min: Optional[int] = Field(default=None, ge=0)
    max: Optional[int] = Field(default=None, ge=0)
    unit: LengthUnit = LengthUnit.WORDS

    @model_validator(mode="after")
    def order_bounds(self) -> "LengthOverride":
        """An inverted range (min > max, both set) is read with its bounds swapped."""
        if self.min and self.max and self.min > self.max:
            self.min, self.max = self.max, self.min
        return self

    @property
    def is_set(self) -> bool:
        return bool(self.min) or bool(self.max)


class GenerationRequest(CamelModel):
    """Everything needed to start a fresh generation run."""
    topic: str
    platform: Platform = Field(default_factory=lambda: PLATFORMS[0])
    author_profile: AuthorProfile = Field(default_factory=lambda: DEFAULT_AUTHOR_PROFILE.model_copy())
    length_override: Optional[LengthOverride] = None
    seo_keyword: Optional[str] = None

    @field_validator("topic", mode="before")
    @classmethod
    def strip_topic(cls, v):
        """Topics are compared and cached after trimming."""
        if v is None:
            return ""
        return str(v).strip()

    @field_validator("seo_keyword", mode="before")
    @classmethod
    def blank_keyword_is_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None


# =============================================================================
# RESEARCH
# =============================================================================

class Source(CamelModel):
    """A web source surfaced by search grounding."""
    uri: str
    title: str = ""


class ResearchData(CamelModel):
    """Topic research produced once per topic and reused by regenerations."""
    history: str
    facts: List[str]
    misconceptions: List[str]
    sources: List[Source] = Field(default_factory=list)

    @field_validator("sources")
    @classmethod
    def dedupe_sources(cls, v: List[Source]) -> List[Source]:
        """Keep the first source for each uri, preserving order."""
        seen = set()
        unique = []
        for source in v:
            if source.uri in seen:
                continue
            seen.add(source.uri)
            unique.append(source)
        return unique


# =============================================================================
# ARTICLE PLAN
# =============================================================================

class ArticleLink(CamelModel):
    """Suggested further-reading link."""
    text: str
    url: str = "#"

    @field_validator("url", mode="before")
    @classmethod
    def backfill_url(cls, v):
        return v or "#"


class VisualPrompt(CamelModel):
    """An image to generate and the body placeholder it resolves."""
    placeholder: str = Field(..., min_length=1)
    visual_type: str = Field(default="image", alias="type")
    prompt: str


class ChecklistStatus(str, enum.Enum):
    """Outcome of a single SEO checklist item."""
    PASS = "Pass"
    NEEDS_IMPROVEMENT = "Needs Improvement"
    FAIL = "Fail"


class Readability(CamelModel):
    level: str
    notes: str


class SEOChecklistItem(CamelModel):
    check: str
    status: ChecklistStatus
    recommendation: str

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v):
        """Accept spelling variants like 'NeedsImprovement' or 'needs_improvement'."""
        if isinstance(v, str):
            key = v.replace("_", "").replace(" ", "").replace("-", "").lower()
            if key == "pass":
                return ChecklistStatus.PASS
            if key == "needsimprovement":
                return ChecklistStatus.NEEDS_IMPROVEMENT
            if key == "fail":
                return ChecklistStatus.FAIL
        return v


class SEOAnalysis(CamelModel):
    """SEO scoring returned with the plan when a target keyword is supplied."""
    score: float = Field(..., ge=0, le=100)
    meta_description: str
    related_keywords: List[str] = Field(default_factory=list)
    readability: Readability
    checklist: List[SEOChecklistItem] = Field(default_factory=list)


class ArticlePlan(CamelModel):
    """The non-streamed part of an article."""
    title: str = Field(..., min_length=1)
    hashtags: List[str] = Field(default_factory=list)
    links: List[ArticleLink] = Field(default_factory=list)
    visual_prompts: List[VisualPrompt]
    seo_analysis: Optional[SEOAnalysis] = None
    sources: List[Source] = Field(default_factory=list)
    seo_keyword_used: Optional[str] = None

    @field_validator("hashtags", "links", mode="before")
    @classmethod
    def backfill_missing_list(cls, v):
        """Peripheral lists may be missing from the AI response."""
        return [] if v is None else v

    @model_validator(mode="after")
    def unique_placeholders(self) -> "ArticlePlan":
        placeholders = [p.placeholder for p in self.visual_prompts]
        if len(placeholders) != len(set(placeholders)):
            raise ValueError("visualPrompts placeholders must be unique")
        return self


class Article(ArticlePlan):
    """
    The final artifact of a generation run.

    Created with an empty body as soon as the plan exists, extended while the
    body streams in, then updated again when images are substituted.
    image_urls is positionally aligned with visual_prompts; None marks a
    visual whose generation failed.
    """
    id: str = Field(default_factory=new_article_id)
    content: str = ""
    image_urls: List[Optional[str]] = Field(default_factory=list)
    platform_name: str
    topic: str

    @classmethod
    def from_plan(
        cls,
        plan: ArticlePlan,
        platform: Platform,
        topic: str,
        article_id: Optional[str] = None,
    ) -> "Article":
        """Start an empty-bodied article from a plan."""
        return cls(
            **plan.model_dump(),
            id=article_id or new_article_id(),
            content="",
            image_urls=[],
            platform_name=platform.name,
            topic=topic,
        )


# =============================================================================
# PIPELINE STATE
# =============================================================================

class StepStatus(str, enum.Enum):
    """Status of one generation step."""
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETE = "complete"
    ERROR = "error"


class GenerationStep(CamelModel):
    title: str
    status: StepStatus = StepStatus.PENDING


STEP_TITLES: List[str] = [
    "Researching topic",
    "Planning the article",
    "Writing the article",
    "Generating visuals",
    "Finalizing post",
]


class PipelinePhase(str, enum.Enum):
    """Where a generation run currently is."""
    IDLE = "idle"
    RESEARCHING = "researching"
    PLANNING = "planning"
    STREAMING = "streaming"
    RENDERING_VISUALS = "rendering_visuals"
    FINALIZING = "finalizing"
    COMPLETE = "complete"
    FAILED = "failed"


class GenerationState(CamelModel):
    """Snapshot published to observers after every transition."""
    phase: PipelinePhase = PipelinePhase.IDLE
    steps: List[GenerationStep] = Field(default_factory=list)
    article: Optional[Article] = None
    error: Optional[str] = None
    failed_step: Optional[int] = None

    @property
    def in_progress_count(self) -> int:
        return sum(1 for step in self.steps if step.status == StepStatus.IN_PROGRESS)


# =============================================================================
# SUPPLEMENTARY TOOLS
# =============================================================================

class KeywordType(str, enum.Enum):
    PRIMARY = "Primary"
    SECONDARY = "Secondary"


class KeywordSuggestion(CamelModel):
    """SEO keyword suggestion for a topic."""
    keyword: str
    type: KeywordType
    intent: str

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v):
        if isinstance(v, str):
            v_lower = v.lower()
            if "primary" in v_lower:
                return KeywordType.PRIMARY
            if "secondary" in v_lower or "long" in v_lower:
                return KeywordType.SECONDARY
        return v


class TopicIdea(CamelModel):
    """Brainstormed article idea."""
    title: str
    angle: str
    keywords: List[str] = Field(default_factory=list)


class RepurposePlatform(str, enum.Enum):
    """Short-form targets an article can be repurposed for."""
    X_THREAD = "X (Twitter) Thread"
    LINKEDIN_POST = "LinkedIn Post"
    INSTAGRAM_CAPTION = "Instagram Caption"
