#!/usr/bin/env python3
"""
Command-line front end for the Stratis article generator.

Runs a full generation (research, plan, streamed body, visuals) and prints
step transitions as they happen. Also exposes the keyword and topic-idea
tools.

Usage:
    python scripts/generate_article.py generate "The history of tea" --platform "Medium Story"
    python scripts/generate_article.py generate "Solar power" --keyword "home solar" --regenerate
    python scripts/generate_article.py ideas "Urban gardening"
    python scripts/generate_article.py keywords "Urban gardening"

Requires GOOGLE_API_KEY in the environment.
"""
import argparse
import asyncio
import sys
from pathlib import Path

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from generation import GeminiContentService, GenerationPipeline, InvalidRequestError, RunFailedError
from shared.config import GeminiSettings
from shared.gemini_client import GeminiClient
from shared.models import (
    GenerationRequest,
    GenerationState,
    LengthOverride,
    LengthUnit,
    PLATFORMS,
    PipelinePhase,
    RepurposePlatform,
    StepStatus,
    get_platform,
)

STATUS_MARKS = {
    StepStatus.PENDING: " ",
    StepStatus.IN_PROGRESS: "…",
    StepStatus.COMPLETE: "✓",
    StepStatus.ERROR: "✗",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Stratis article generator")
    subparsers = parser.add_subparsers(dest="command", required=True)

    generate = subparsers.add_parser("generate", help="Generate a full article")
    generate.add_argument("topic")
    generate.add_argument(
        "--platform",
        default=PLATFORMS[0].name,
        help=f"Target platform, one of: {', '.join(p.name for p in PLATFORMS)}",
    )
    generate.add_argument("--keyword", default=None, help="Target SEO keyword")
    generate.add_argument("--min", type=int, default=None, help="Minimum length")
    generate.add_argument("--max", type=int, default=None, help="Maximum length")
    generate.add_argument(
        "--unit",
        choices=[u.value for u in LengthUnit],
        default=LengthUnit.WORDS.value,
    )
    generate.add_argument(
        "--regenerate",
        action="store_true",
        help="Regenerate once with a new layout after the first run",
    )
    generate.add_argument(
        "--repurpose",
        choices=[p.value for p in RepurposePlatform],
        default=None,
        help="Repurpose the finished article for a short-form platform",
    )
    generate.add_argument("--output", type=Path, default=None, help="Write the final HTML body here")

    ideas = subparsers.add_parser("ideas", help="Brainstorm article ideas for a broad topic")
    ideas.add_argument("topic")

    keywords = subparsers.add_parser("keywords", help="Suggest SEO keywords for a topic")
    keywords.add_argument("topic")

    return parser


class StepPrinter:
    """Prints a line whenever a step changes status."""

    def __init__(self):
        self._seen = {}

    def __call__(self, state: GenerationState) -> None:
        for index, step in enumerate(state.steps):
            if self._seen.get(index) == step.status:
                continue
            self._seen[index] = step.status
            print(f"  [{STATUS_MARKS[step.status]}] {step.title}")

    def reset(self) -> None:
        self._seen = {}


def print_result(state: GenerationState) -> None:
    print()
    if state.phase == PipelinePhase.FAILED:
        print(f"✗ Generation failed: {state.error}")
        return

    article = state.article
    print(f"✓ {article.title}")
    print(f"  Platform: {article.platform_name}")
    print(f"  Body: {len(article.content)} chars")
    print(f"  Images: {sum(1 for url in article.image_urls if url)}/{len(article.image_urls)}")
    if article.hashtags:
        print(f"  Hashtags: {' '.join(article.hashtags)}")
    if article.seo_analysis:
        print(f"  SEO score: {article.seo_analysis.score:g} ({article.seo_keyword_used})")
    for source in article.sources:
        print(f"  Source: {source.title or source.uri} <{source.uri}>")


async def run_generate(args, service: GeminiContentService, settings: GeminiSettings) -> int:
    try:
        platform = get_platform(args.platform)
    except KeyError as e:
        print(f"✗ {e.args[0]}")
        return 2

    length_override = None
    if args.min or args.max:
        length_override = LengthOverride(min=args.min, max=args.max, unit=LengthUnit(args.unit))

    request = GenerationRequest(
        topic=args.topic,
        platform=platform,
        length_override=length_override,
        seo_keyword=args.keyword,
    )

    pipeline = GenerationPipeline(service, max_attempts=settings.max_attempts)
    printer = StepPrinter()
    pipeline.subscribe(printer)

    print(f"Generating: {request.topic} ({platform.name})")
    try:
        state = await pipeline.start(request)
    except InvalidRequestError as e:
        print(f"✗ {e}")
        return 2
    print_result(state)

    if args.regenerate and state.phase == PipelinePhase.COMPLETE:
        print()
        print("Regenerating with a new layout...")
        printer.reset()
        state = await pipeline.regenerate(state.article)
        print_result(state)

    if state.phase != PipelinePhase.COMPLETE:
        return 1

    if args.output:
        args.output.write_text(state.article.content, encoding="utf-8")
        print(f"✓ Wrote body to {args.output}")

    if args.repurpose:
        print()
        print(f"Repurposing for {args.repurpose}...")
        try:
            text = await service.repurpose(
                state.article.title,
                state.article.content,
                RepurposePlatform(args.repurpose),
            )
        except RunFailedError as e:
            print(f"✗ Repurpose failed: {e}")
            return 1
        print()
        print(text)

    return 0


async def run_ideas(args, service: GeminiContentService) -> int:
    try:
        ideas = await service.explore_topic_ideas(args.topic)
    except RunFailedError as e:
        print(f"✗ {e}")
        return 1

    for i, idea in enumerate(ideas, 1):
        print(f"{i}. {idea.title}")
        print(f"   {idea.angle}")
        if idea.keywords:
            print(f"   Keywords: {', '.join(idea.keywords)}")
    return 0


async def run_keywords(args, service: GeminiContentService) -> int:
    try:
        keywords = await service.find_keywords(args.topic)
    except RunFailedError as e:
        print(f"✗ {e}")
        return 1

    for suggestion in keywords:
        print(f"- {suggestion.keyword} [{suggestion.type.value}] ({suggestion.intent})")
    return 0


async def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = GeminiSettings.from_env()
    except ValueError as e:
        print(f"✗ {e}")
        return 2

    async with GeminiClient(settings) as client:
        service = GeminiContentService(client, settings)

        if args.command == "generate":
            return await run_generate(args, service, settings)
        if args.command == "ideas":
            return await run_ideas(args, service)
        return await run_keywords(args, service)


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
