"""Prompt builders for the pipeline stages.

Each builder returns the role-tagged messages for one collaborator call.
Variable context blocks pass through :func:`truncate_to_budget` so a
large repository cannot overflow the model's context window.
"""

from __future__ import annotations

from collections.abc import Sequence

from repo_tutor.domain.entities import (
    Abstraction,
    ChapterRef,
    ChatMessage,
    RelationshipAnalysis,
    SourceFile,
)
from repo_tutor.services.token_budget import truncate_to_budget

PREVIEW_CHARS = 1500

# ── System prompts ──────────────────────────────────────────────────────────

OVERVIEW_SYSTEM_PROMPT = """\
You are a senior software analyst.  Given the name of a GitHub repository \
and the list of its source files, describe in one or two short paragraphs \
what the project is for and how it is laid out.  Only state what the file \
list supports.
"""

ANALYST_SYSTEM_PROMPT = """\
You are a senior software analyst who explains codebases to newcomers.  \
When asked for structured output, return exactly the requested format \
inside a single fenced block and nothing that contradicts it.
"""

WRITER_SYSTEM_PROMPT = """\
You are a technical writer producing a beginner-friendly tutorial about a \
codebase, one Markdown chapter at a time.
"""


def language_instruction(language: str) -> str:
    """Instruction to write prose in *language*; empty for English."""
    if not language or language.strip().lower() == "english":
        return ""
    lang = language.strip().capitalize()
    return (
        f"IMPORTANT: Write all generated prose (names, descriptions, summaries, "
        f"labels, chapter text) in **{lang}**.  Keep JSON keys, YAML keys, "
        f"indices and code unchanged.\n\n"
    )


def _messages(system: str, user: str) -> list[ChatMessage]:
    return [ChatMessage(role="system", content=system), ChatMessage(role="user", content=user)]


def _file_listing(files: Sequence[SourceFile]) -> str:
    return "\n".join(f"- {i} # {f.path}" for i, f in enumerate(files))


def _abstraction_listing(abstractions: Sequence[Abstraction]) -> str:
    return "\n".join(f"- {i} # {a.name}" for i, a in enumerate(abstractions))


# ── Stage 1: overview ───────────────────────────────────────────────────────


def build_overview_messages(
    project_name: str,
    files: Sequence[SourceFile],
    *,
    description: str | None = None,
    main_language: str | None = None,
    language: str = "english",
    max_tokens: int = 32_000,
) -> list[ChatMessage]:
    listing = truncate_to_budget(_file_listing(files), max_tokens)
    user = (
        f"{language_instruction(language)}"
        f"Analyze this GitHub repository: {project_name}\n"
        f"Description: {description or 'No description'}\n"
        f"Main Language: {main_language or 'Unknown'}\n\n"
        f"Total files: {len(files)}\n"
        f"Files:\n{listing}\n\n"
        "Provide a brief overview of the repository structure and purpose."
    )
    return _messages(OVERVIEW_SYSTEM_PROMPT, user)


def fallback_overview(
    project_name: str,
    files: Sequence[SourceFile],
    description: str | None = None,
    main_language: str | None = None,
) -> str:
    """Templated overview used when the overview call fails."""
    return (
        f"Repository: {project_name}\n"
        f"Description: {description or 'No description'}\n"
        f"Main Language: {main_language or 'Unknown'}\n"
        f"Files analysed: {len(files)}\n"
        f"{_file_listing(files)}"
    )


# ── Stage 2: identify abstractions ──────────────────────────────────────────


def build_abstractions_messages(
    project_name: str,
    files: Sequence[SourceFile],
    overview: str,
    *,
    max_abstractions: int = 7,
    language: str = "english",
    max_tokens: int = 32_000,
) -> list[ChatMessage]:
    """Every file with a preview of at most :data:`PREVIEW_CHARS` characters."""
    sections = [
        f"--- File Index {i}: {f.path} ---\n{f.content[:PREVIEW_CHARS]}"
        for i, f in enumerate(files)
    ]
    context = truncate_to_budget("\n\n".join(sections), max_tokens)
    user = f"""\
{language_instruction(language)}For the project `{project_name}`:

Repository overview:
{overview}

Codebase context:
{context}

File indices and paths:
{_file_listing(files)}

Identify the top 5-{max_abstractions} core abstractions that a newcomer needs \
to understand this codebase.  For each one give:
- `name`: a short name
- `description`: a beginner-friendly explanation of what it is and why it exists
- `category`: one word such as service, model, utility, config, interface
- `file_indices`: the indices (from the list above) of the files that implement it

Respond with a JSON object in exactly this format:

```json
{{
  "abstractions": [
    {{
      "name": "Query Processing",
      "description": "Turns a user query into an execution plan.",
      "category": "service",
      "file_indices": [0, 3]
    }}
  ]
}}
```
"""
    return _messages(ANALYST_SYSTEM_PROMPT, user)


# ── Stage 3: analyze relationships ──────────────────────────────────────────

_JSON_RELATIONSHIP_FORMAT = """\
Respond with a JSON object in exactly this format:

```json
{
  "summary": "A brief, simple explanation of the project.",
  "relationships": [
    {"from": 0, "to": 1, "label": "Manages"},
    {"from": 2, "to": 0, "label": "Provides config"}
  ]
}
```
"""

_YAML_RELATIONSHIP_FORMAT = """\
Respond with a YAML block in exactly this format:

```yaml
summary: |
  A brief, simple explanation of the project.
relationships:
  - from_abstraction: 0 # AbstractionName1
    to_abstraction: 1 # AbstractionName2
    label: "Manages"
  - from_abstraction: 2 # AbstractionName3
    to_abstraction: 0 # AbstractionName1
    label: "Provides config"
```
"""


def referenced_file_indices(abstractions: Sequence[Abstraction]) -> list[int]:
    """Sorted union of the file indices referenced by any abstraction."""
    return sorted({i for a in abstractions for i in a.file_indices})


def build_relationships_messages(
    project_name: str,
    abstractions: Sequence[Abstraction],
    files: Sequence[SourceFile],
    *,
    output_format: str = "json",
    language: str = "english",
    max_tokens: int = 32_000,
) -> list[ChatMessage]:
    """Abstractions plus the union of the files they reference."""
    parts = ["Identified abstractions:"]
    for i, a in enumerate(abstractions):
        indices = ", ".join(str(x) for x in a.file_indices) or "none"
        parts.append(f"- Index {i}: {a.name} (relevant file indices: [{indices}])\n  Description: {a.description}")
    parts.append("\nRelevant file snippets:")
    for i in referenced_file_indices(abstractions):
        if 0 <= i < len(files):
            parts.append(f"--- File: {i} # {files[i].path} ---\n{files[i].content}")
    context = truncate_to_budget("\n".join(parts), max_tokens)

    response_format = _YAML_RELATIONSHIP_FORMAT if output_format == "yaml" else _JSON_RELATIONSHIP_FORMAT
    user = f"""\
Based on the following abstractions and relevant code snippets from the project `{project_name}`:

List of abstraction indices and names:
{_abstraction_listing(abstractions)}

Context (abstractions, descriptions, code):
{context}

{language_instruction(language)}Please provide:
1. A high-level `summary` of the project's main purpose in a few \
beginner-friendly sentences.
2. A list (`relationships`) of the key interactions between these \
abstractions.  For each relationship give the index of the source \
abstraction, the index of the target abstraction and a `label` of just a \
few words (e.g. "Manages", "Inherits", "Uses").

Make sure every abstraction is involved in at least one relationship.

{response_format}"""
    return _messages(ANALYST_SYSTEM_PROMPT, user)


# ── Stage 4: order chapters ─────────────────────────────────────────────────


def build_order_messages(
    project_name: str,
    abstractions: Sequence[Abstraction],
    analysis: RelationshipAnalysis,
    *,
    language: str = "english",
    max_tokens: int = 32_000,
) -> list[ChatMessage]:
    edges = [
        f"- From {r.source} ({abstractions[r.source].name}) to {r.target} "
        f"({abstractions[r.target].name}): {r.label}"
        for r in analysis.relationships
    ]
    context = truncate_to_budget(
        f"Project summary:\n{analysis.summary}\n\nRelationships (indices refer to abstractions above):\n"
        + ("\n".join(edges) or "- none identified"),
        max_tokens,
    )
    user = f"""\
{language_instruction(language)}Given the following project abstractions and their \
relationships for the project `{project_name}`:

Abstractions (Index # Name):
{_abstraction_listing(abstractions)}

Context about relationships and project summary:
{context}

If you are going to make a tutorial for `{project_name}`, what is the best \
order to explain these abstractions, from first to last?  Explain the most \
important or foundational, user-facing concepts first, then lower-level \
implementation details.

Respond with a JSON object in exactly this format:

```json
{{
  "order": [2, 0, 1, 3]
}}
```

The order array must contain every abstraction index exactly once.
"""
    return _messages(ANALYST_SYSTEM_PROMPT, user)


# ── Stage 5: write chapters ─────────────────────────────────────────────────


def chapter_listing(refs: Sequence[ChapterRef]) -> str:
    """``N. [Name](filename)`` lines for cross-linking."""
    return "\n".join(f"{ref.number}. [{ref.name}]({ref.filename})" for ref in refs)


def build_chapter_messages(
    project_name: str,
    ref: ChapterRef,
    abstraction: Abstraction,
    files: Sequence[SourceFile],
    *,
    listing: str,
    previous_summary: str,
    previous: ChapterRef | None = None,
    following: ChapterRef | None = None,
    project_summary: str = "",
    language: str = "english",
    max_tokens: int = 32_000,
) -> list[ChatMessage]:
    """Prompt for one chapter: its abstraction, files and the story so far."""
    snippets = "\n\n".join(
        f"--- File: {files[i].path} ---\n{files[i].content}"
        for i in abstraction.file_indices
        if 0 <= i < len(files)
    )
    snippets = truncate_to_budget(snippets, max_tokens)

    neighbours = []
    if previous is not None:
        neighbours.append(f"Previous chapter: [{previous.name}]({previous.filename})")
    if following is not None:
        neighbours.append(f"Next chapter: [{following.name}]({following.filename})")

    user = f"""\
{language_instruction(language)}Write a very beginner-friendly tutorial chapter \
(in Markdown format) for the project `{project_name}` about the concept: \
"{abstraction.name}".  This is Chapter {ref.number}.

Project summary:
{project_summary or project_name}

Concept details:
- Name: {abstraction.name}
- Description:
{abstraction.description}

Complete tutorial structure:
{listing}

{chr(10).join(neighbours)}

Context from previous chapters:
{previous_summary or "This is the first chapter."}

Relevant code snippets:
{snippets or "No specific code snippets provided for this abstraction."}

Instructions:
- Start with the heading `# Chapter {ref.number}: {abstraction.name}`.
- If this is not the first chapter, open with a short transition from the \
previous chapter using a Markdown link to it.
- Motivate the concept with one concrete use case, then explain it step by \
step.  Keep every code block under 10 lines.
- Link other chapters as [Chapter Title](filename.md) using the structure above.
- Mermaid diagrams (```mermaid) are welcome for internal flows.
- End with a short conclusion and a link to the next chapter if there is one.
- Output only the Markdown content of the chapter.
"""
    return _messages(WRITER_SYSTEM_PROMPT, user)
