"""Command-line entry point.

Usage::

    repo-tutor analyze octocat/Hello-World --output tutorial.json --chapters-dir tutorial/
    repo-tutor serve
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

import httpx

from repo_tutor.domain.entities import PipelineResult
from repo_tutor.domain.exceptions import RepoTutorError
from repo_tutor.infrastructure.config import Settings, get_settings
from repo_tutor.infrastructure.github_rest_adapter import GitHubRestAdapter
from repo_tutor.infrastructure.openai_adapter import OpenAIAdapter
from repo_tutor.main import configure_logging
from repo_tutor.main import main as serve
from repo_tutor.services.chapter_text import chapter_filename
from repo_tutor.services.pipeline import TutorialPipeline
from repo_tutor.services.repo_fetcher import RepositoryFetcher

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="repo-tutor",
        description="Turn a GitHub repository into a beginner-friendly tutorial.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    commands = parser.add_subparsers(dest="command", required=True)

    analyze = commands.add_parser("analyze", help="Run the tutorial pipeline for a repository")
    analyze.add_argument("repo", help="owner/name or a https://github.com/owner/name URL")
    analyze.add_argument("--branch", default=None,
                         help="Branch to fetch (default: the repository's default branch)")
    analyze.add_argument("--language", default=None,
                         help="Language of the generated prose (default: from settings)")
    analyze.add_argument("--output", "-o", type=Path, default=None,
                         help="Write the result JSON here instead of stdout")
    analyze.add_argument("--chapters-dir", type=Path, default=None,
                         help="Also write one Markdown file per chapter into this directory")

    commands.add_parser("serve", help="Start the HTTP API")
    return parser


def write_chapter_files(result: PipelineResult, directory: Path) -> list[Path]:
    """Write each chapter as ``NN_<name>.md`` and return the paths."""
    directory.mkdir(parents=True, exist_ok=True)
    written: list[Path] = []
    for number, (index, content) in enumerate(zip(result.chapter_order, result.chapters), start=1):
        path = directory / chapter_filename(number, result.abstractions[index].name)
        path.write_text(content, encoding="utf-8")
        written.append(path)
    return written


async def _analyze(args: argparse.Namespace, settings: Settings) -> PipelineResult:
    token = settings.github_token.get_secret_value() if settings.github_token else None
    llm = OpenAIAdapter(
        api_key=settings.openai_api_key.get_secret_value(),
        model=settings.openai_model,
        default_temperature=settings.openai_temperature,
    )
    try:
        async with httpx.AsyncClient(timeout=httpx.Timeout(30.0)) as client:
            github = GitHubRestAdapter(client=client, token=token, api_url=settings.github_api_url)
            pipeline = TutorialPipeline(
                fetcher=RepositoryFetcher(github, max_concurrency=settings.fetch_concurrency),
                llm_gateway=llm,
                max_files=settings.max_files_to_analyze,
                max_abstractions=settings.max_abstractions,
                max_context_tokens=settings.max_context_tokens,
                llm_timeout=settings.llm_timeout_seconds,
                relationship_format=settings.relationship_format,
                language=settings.language,
                temperature=settings.openai_temperature,
            )
            return await pipeline.run(args.repo, branch=args.branch, language=args.language)
    finally:
        await llm.close()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    if args.command == "serve":
        serve()
        return 0

    settings = get_settings()
    configure_logging(settings)
    try:
        result = asyncio.run(_analyze(args, settings))
    except RepoTutorError as exc:
        logger.error("%s", exc)
        return 1

    document = json.dumps(result.to_dict(), indent=2, ensure_ascii=False)
    if args.output is None:
        sys.stdout.write(document + "\n")
    else:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_text(document, encoding="utf-8")
        logger.info("Wrote %s", args.output)

    if args.chapters_dir is not None:
        paths = write_chapter_files(result, args.chapters_dir)
        logger.info("Wrote %d chapter files to %s", len(paths), args.chapters_dir)

    if result.error:
        logger.warning("Completed with errors: %s", result.error)
    return 0


if __name__ == "__main__":
    sys.exit(main())
