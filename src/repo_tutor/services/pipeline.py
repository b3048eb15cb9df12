"""Tutorial pipeline use case — the main orchestration pipeline.

This is the single entry point for the business logic.  It depends only on
the :class:`RepositoryFetcher` service and the :class:`LlmGateway` port;
the interface layer injects concrete adapters at runtime.

Five stages run strictly in sequence, each taking a
:class:`PipelineContext` and returning a new one::

    fetch -> identify_abstractions -> analyze_relationships
          -> order_chapters -> write_chapters

A failed or malformed collaborator response never stops the run; the
stage falls back to its default and records why in ``errors``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import replace

from repo_tutor.domain.entities import (
    Abstraction,
    Chapter,
    ChapterRef,
    ChatMessage,
    PipelineContext,
    PipelineResult,
    RelationshipAnalysis,
    SourceFile,
)
from repo_tutor.domain.exceptions import (
    LlmError,
    PipelineContractError,
    RemoteUnavailableError,
)
from repo_tutor.domain.ports.llm_gateway import LlmGateway
from repo_tutor.domain.value_objects import RepoIdentifier
from repo_tutor.services.chapter_text import (
    chapter_filename,
    condense_chapter,
    placeholder_chapter,
    validate_chapter_content,
)
from repo_tutor.services.extraction import (
    FAILED_RELATIONSHIP_SUMMARY,
    Extraction,
    parse_abstractions,
    parse_chapter_order,
    parse_relationships,
)
from repo_tutor.services.prompts import (
    build_abstractions_messages,
    build_chapter_messages,
    build_order_messages,
    build_overview_messages,
    build_relationships_messages,
    chapter_listing,
    fallback_overview,
)
from repo_tutor.services.repo_fetcher import RepositoryFetcher, flatten_files

logger = logging.getLogger(__name__)

# ── Fallback file set ───────────────────────────────────────────────────────

FALLBACK_FILES: tuple[SourceFile, ...] = (
    SourceFile(
        "src/main.ts",
        "// Main application file\nexport class App {\n  start() {\n"
        "    console.log('Starting app');\n  }\n}",
    ),
    SourceFile(
        "src/config.ts",
        "// Configuration file\nexport const config = {\n  port: 3000,\n"
        "  database: 'mongodb://localhost'\n};",
    ),
    SourceFile(
        "src/utils.ts",
        "// Utility functions\nexport function formatDate(date: Date): string {\n"
        "  return date.toISOString();\n}",
    ),
)

NO_ABSTRACTIONS_SUMMARY = "No abstractions were identified, so no relationships were analyzed."


def _require(context: PipelineContext, stage: str, *fields: str) -> None:
    missing = [name for name in fields if getattr(context, name) is None]
    if missing:
        raise PipelineContractError(
            f"Stage '{stage}' started without required field(s): {', '.join(missing)}"
        )


# ── Use case ────────────────────────────────────────────────────────────────


class TutorialPipeline:
    """Orchestrates the repository → tutorial pipeline.

    Parameters
    ----------
    fetcher:
        Builds the repository file tree.
    llm_gateway:
        Adapter that sends prompts to an LLM.
    max_files:
        Upper bound on the number of files handed to the analysis stages.
    max_abstractions:
        Upper bound asked of the model when identifying abstractions.
    max_context_tokens:
        Token budget for each prompt's variable context block.
    llm_timeout:
        Seconds to wait for each collaborator call.
    relationship_format:
        ``"json"`` or ``"yaml"``, the format requested for relationships.
    language:
        Default output language for generated prose.
    temperature:
        Determinism parameter passed to every call; ``None`` keeps the
        gateway's default.
    """

    def __init__(
        self,
        fetcher: RepositoryFetcher,
        llm_gateway: LlmGateway,
        *,
        max_files: int = 20,
        max_abstractions: int = 7,
        max_context_tokens: int = 32_000,
        llm_timeout: float = 120.0,
        relationship_format: str = "json",
        language: str = "english",
        temperature: float | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._llm = llm_gateway
        self._max_files = max_files
        self._max_abstractions = max_abstractions
        self._max_tokens = max_context_tokens
        self._timeout = llm_timeout
        self._relationship_format = relationship_format
        self._language = language
        self._temperature = temperature

    # ── Public entry point ──────────────────────────────────────────────

    async def run(
        self, repo: str, branch: str | None = None, language: str | None = None
    ) -> PipelineResult:
        """Run all five stages and return the produced result.

        Raises :class:`InvalidRepoIdentifierError` before any stage runs
        when *repo* cannot be parsed.
        """
        identifier = RepoIdentifier.parse(repo)
        logger.info("Building tutorial for %s", identifier.full_name)

        context = PipelineContext(
            repo=identifier.full_name,
            project_name=identifier.repo,
            branch=branch,
            language=language or self._language,
        )
        for stage in (
            self.fetch,
            self.identify_abstractions,
            self.analyze_relationships,
            self.order_chapters,
            self.write_chapters,
        ):
            context = await stage(context)
        return build_result(context)

    # ── Stage 1: fetch ──────────────────────────────────────────────────

    async def fetch(self, context: PipelineContext) -> PipelineContext:
        """Fetch and flatten the tree, then ask for a repository overview."""
        notes = list(context.notes)
        branch = context.branch
        used_fallback = False
        description: str | None = None
        main_language: str | None = None

        try:
            snapshot = await self._fetcher.snapshot(context.repo, context.branch)
        except RemoteUnavailableError as exc:
            logger.warning("Fetching %s failed, using fallback files: %s", context.repo, exc)
            notes.append(f"Repository could not be fetched ({exc}); analysed fallback files instead.")
            files: list[SourceFile] = list(FALLBACK_FILES)
            used_fallback = True
        else:
            branch = snapshot.branch
            description, main_language = snapshot.description, snapshot.language
            files = flatten_files(snapshot.tree)
            if not files:
                logger.warning("%s has no analysable files, using fallback files", context.repo)
                notes.append("Repository has no analysable files; analysed fallback files instead.")
                files = list(FALLBACK_FILES)
                used_fallback = True

        if len(files) > self._max_files:
            notes.append(f"Analysed the first {self._max_files} of {len(files)} files.")
            files = files[: self._max_files]
        logger.info("Analysing %d files from %s", len(files), context.repo)

        messages = build_overview_messages(
            context.project_name,
            files,
            description=description,
            main_language=main_language,
            language=context.language,
            max_tokens=self._max_tokens,
        )
        overview, failure = await self._ask(messages, "fetch")
        if failure is not None or not overview or not overview.strip():
            notes.append("Repository overview could not be generated; used a templated overview.")
            overview = fallback_overview(context.project_name, files, description, main_language)

        return replace(
            context,
            branch=branch,
            files=tuple(files),
            used_fallback_files=used_fallback,
            overview=overview.strip(),
            notes=tuple(notes),
        )

    # ── Stage 2: identify abstractions ──────────────────────────────────

    async def identify_abstractions(self, context: PipelineContext) -> PipelineContext:
        _require(context, "identify-abstractions", "files", "overview")
        files = context.files or ()

        messages = build_abstractions_messages(
            context.project_name,
            files,
            context.overview or "",
            max_abstractions=self._max_abstractions,
            language=context.language,
            max_tokens=self._max_tokens,
        )
        raw, failure = await self._ask(messages, "identify-abstractions")
        extraction: Extraction[tuple[Abstraction, ...]] = (
            Extraction((), failure) if failure is not None else parse_abstractions(raw, len(files))
        )

        for abstraction in extraction.value:
            if not abstraction.file_indices:
                logger.warning("Abstraction %r has no associated files", abstraction.name)
        logger.info("Identified %d abstractions", len(extraction.value))

        return replace(
            context,
            abstractions_raw=raw or "",
            abstractions=extraction.value,
            errors=_with_error(context.errors, "identify-abstractions", extraction),
        )

    # ── Stage 3: analyze relationships ──────────────────────────────────

    async def analyze_relationships(self, context: PipelineContext) -> PipelineContext:
        _require(context, "analyze-relationships", "files", "abstractions")
        abstractions = context.abstractions or ()
        if not abstractions:
            analysis = RelationshipAnalysis(summary=NO_ABSTRACTIONS_SUMMARY)
            return replace(context, relationship_analysis=analysis)

        messages = build_relationships_messages(
            context.project_name,
            abstractions,
            context.files or (),
            output_format=self._relationship_format,
            language=context.language,
            max_tokens=self._max_tokens,
        )
        raw, failure = await self._ask(messages, "analyze-relationships")
        extraction = (
            Extraction(RelationshipAnalysis(summary=FAILED_RELATIONSHIP_SUMMARY), failure)
            if failure is not None
            else parse_relationships(raw, len(abstractions))
        )

        involved = {i for r in extraction.value.relationships for i in (r.source, r.target)}
        unrelated = [a.name for i, a in enumerate(abstractions) if i not in involved]
        if unrelated and extraction.ok:
            logger.warning("Abstractions without any relationship: %s", ", ".join(unrelated))

        return replace(
            context,
            relationship_analysis=extraction.value,
            errors=_with_error(context.errors, "analyze-relationships", extraction),
        )

    # ── Stage 4: order chapters ─────────────────────────────────────────

    async def order_chapters(self, context: PipelineContext) -> PipelineContext:
        _require(context, "order-chapters", "abstractions", "relationship_analysis")
        abstractions = context.abstractions or ()
        if not abstractions:
            return replace(context, chapter_order=())

        messages = build_order_messages(
            context.project_name,
            abstractions,
            context.relationship_analysis or RelationshipAnalysis(summary=""),
            language=context.language,
            max_tokens=self._max_tokens,
        )
        raw, failure = await self._ask(messages, "order-chapters")
        extraction = (
            Extraction(tuple(range(len(abstractions))), failure)
            if failure is not None
            else parse_chapter_order(raw, len(abstractions))
        )
        logger.info("Chapter order: %s", list(extraction.value))

        return replace(
            context,
            chapter_order=extraction.value,
            errors=_with_error(context.errors, "order-chapters", extraction),
        )

    # ── Stage 5: write chapters ─────────────────────────────────────────

    async def write_chapters(self, context: PipelineContext) -> PipelineContext:
        """Write chapters one by one, each seeing the summary of those before it."""
        _require(
            context, "write-chapters", "files", "abstractions", "relationship_analysis", "chapter_order"
        )
        abstractions = context.abstractions or ()
        order = context.chapter_order or ()
        refs = [
            ChapterRef(number, abstractions[index].name, chapter_filename(number, abstractions[index].name))
            for number, index in enumerate(order, start=1)
        ]
        listing = chapter_listing(refs)
        project_summary = _project_summary(context)

        chapters: list[Chapter] = []
        errors = list(context.errors)
        previous_summary = ""
        for position, (ref, index) in enumerate(zip(refs, order)):
            chapter = await self._write_chapter(
                context,
                ref,
                index,
                listing=listing,
                previous_summary=previous_summary,
                previous=refs[position - 1] if position > 0 else None,
                following=refs[position + 1] if position + 1 < len(refs) else None,
                project_summary=project_summary,
            )
            if chapter.error is not None:
                errors.append(f"write-chapters: chapter {ref.number}: {chapter.error}")
            chapters.append(chapter)
            previous_summary = _extend_summary(
                previous_summary,
                condense_chapter(ref.number, ref.name, chapter.content, abstractions[index].description),
            )

        logger.info("Wrote %d chapters", len(chapters))
        return replace(context, chapters=tuple(chapters), errors=tuple(errors))

    async def _write_chapter(
        self,
        context: PipelineContext,
        ref: ChapterRef,
        index: int,
        *,
        listing: str,
        previous_summary: str,
        previous: ChapterRef | None,
        following: ChapterRef | None,
        project_summary: str,
    ) -> Chapter:
        abstraction = (context.abstractions or ())[index]
        messages = build_chapter_messages(
            context.project_name,
            ref,
            abstraction,
            context.files or (),
            listing=listing,
            previous_summary=previous_summary,
            previous=previous,
            following=following,
            project_summary=project_summary,
            language=context.language,
            max_tokens=self._max_tokens,
        )
        raw, failure = await self._ask(messages, f"write-chapters[{ref.number}]")
        if failure is None and (raw is None or not raw.strip()):
            failure = "empty chapter response"

        if failure is not None:
            logger.warning("Chapter %d (%s) falls back to a placeholder: %s", ref.number, ref.name, failure)
            content = placeholder_chapter(ref.number, ref.name, abstraction.description, failure)
        else:
            content = validate_chapter_content(raw, ref.number, ref.name)

        return Chapter(
            number=ref.number,
            abstraction_index=index,
            name=ref.name,
            filename=ref.filename,
            content=content,
            previous_chapters_summary=previous_summary,
            error=failure,
        )

    # ── LLM interaction ─────────────────────────────────────────────────

    async def _ask(
        self, messages: Sequence[ChatMessage], stage: str
    ) -> tuple[str | None, str | None]:
        """Return ``(text, None)`` or ``(None, reason)`` for a failed call."""
        try:
            raw = await asyncio.wait_for(
                self._llm.complete(messages, temperature=self._temperature),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Stage %s: LLM call timed out after %.0fs", stage, self._timeout)
            return None, f"LLM call timed out after {self._timeout:.0f}s"
        except LlmError as exc:
            logger.warning("Stage %s: LLM call failed: %s", stage, exc)
            return None, str(exc)
        logger.debug("Stage %s raw response:\n%s", stage, raw)
        return raw, None


# ── Helpers ─────────────────────────────────────────────────────────────────


def _with_error(errors: tuple[str, ...], stage: str, extraction: Extraction) -> tuple[str, ...]:
    if extraction.ok:
        return errors
    return (*errors, f"{stage}: {extraction.error}")


def _extend_summary(summary: str, line: str) -> str:
    return f"{summary}\n{line}" if summary else line


def _project_summary(context: PipelineContext) -> str:
    lines = []
    if context.relationship_analysis is not None:
        lines.append(context.relationship_analysis.summary)
    lines.extend(f"- {a.name}: {a.description}" for a in context.abstractions or ())
    return "\n".join(lines)


def build_result(context: PipelineContext) -> PipelineResult:
    """Assemble the produced result from a completed context."""
    _require(
        context,
        "result",
        "files",
        "abstractions",
        "relationship_analysis",
        "chapter_order",
        "chapters",
    )
    analysis = context.relationship_analysis or RelationshipAnalysis(summary="")
    return PipelineResult(
        abstractions_raw=context.abstractions_raw or "",
        abstractions=context.abstractions or (),
        relationship_summary=analysis.summary,
        relationships=analysis.relationships,
        chapter_order=context.chapter_order or (),
        chapters=tuple(chapter.content for chapter in context.chapters or ()),
        files_data=context.files or (),
        notes=context.notes,
        error="; ".join(context.errors) or None,
    )
