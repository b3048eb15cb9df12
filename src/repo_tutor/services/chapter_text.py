"""Chapter text repair, naming and condensing.

Chapter responses are Markdown, so there is no structural parse.  Instead
a textual pass removes the backslash escaping models like to insert and
makes sure the chapter opens with its numbered heading.
"""

from __future__ import annotations

import re

from repo_tutor.domain.exceptions import MissingStageOutputError

SUMMARY_CHARS = 300

_LEADING_BACKSLASHES_RE = re.compile(r"^(\s*)\\+")
_FENCE_OPEN_RE = re.compile(r"^\s*```(\w*)")
_FENCE_RE = re.compile(r"^\s*```")
_ESCAPED_HEADING_RE = re.compile(r"^(\s*)\\+(#+\s*)")
_ESCAPED_LINK_RE = re.compile(r"\\([\[\]()/])")
_ESCAPED_PUNCT_RE = re.compile(r"\\([*_`>])")
_INDENTED_CHAPTER_HEADING_RE = re.compile(r"^[ \t]+(?=#\s*Chapter)")
_WHOLE_MARKDOWN_FENCE_RE = re.compile(r"^\s*```(?:markdown|md)[ \t]*\r?\n(.*?)\r?\n```\s*$", re.DOTALL)
_UNSAFE_NAME_RE = re.compile(r"[^a-zA-Z0-9]")


def clean_llm_output(content: str) -> str:
    """Strip stray backslash escaping and chapter heading indentation outside code fences.

    Inside ``mermaid`` fences every backslash is removed; any other fenced
    block is passed through untouched.
    """
    if not content:
        return content

    out: list[str] = []
    in_fence = False
    fence_lang = ""
    for line in content.split("\n"):
        normalized = _LEADING_BACKSLASHES_RE.sub(r"\1", line)

        opening = _FENCE_OPEN_RE.match(normalized)
        if not in_fence and opening:
            in_fence = True
            fence_lang = opening.group(1).lower()
            out.append(normalized)
            continue
        if in_fence and _FENCE_RE.match(normalized):
            in_fence = False
            fence_lang = ""
            out.append(normalized)
            continue

        if in_fence:
            out.append(line.replace("\\", "") if fence_lang == "mermaid" else line)
            continue

        line = _ESCAPED_HEADING_RE.sub(r"\1\2", line)
        line = _ESCAPED_LINK_RE.sub(r"\1", line)
        line = _ESCAPED_PUNCT_RE.sub(r"\1", line)
        line = _INDENTED_CHAPTER_HEADING_RE.sub("", line)
        out.append(line)

    return "\n".join(out)


def chapter_heading(chapter_number: int, name: str) -> str:
    return f"# Chapter {chapter_number}: {name}"


def validate_chapter_content(content: str | None, chapter_number: int, name: str) -> str:
    """Clean *content* and guarantee it opens with ``# Chapter N: name``.

    A different first heading line is replaced; text with no heading gets
    one prepended.
    """
    if content is None:
        raise MissingStageOutputError(f"Chapter {chapter_number} produced no output.")

    wrapped = _WHOLE_MARKDOWN_FENCE_RE.match(content)
    if wrapped:
        content = wrapped.group(1)

    content = clean_llm_output(content)

    heading = chapter_heading(chapter_number, name)
    body = content.strip()
    if not body:
        return heading + "\n"

    lines = body.split("\n")
    if lines[0].strip() == heading:
        return body
    if lines[0].lstrip().startswith("#"):
        lines[0] = heading
        return "\n".join(lines)
    return f"{heading}\n\n{body}"


def chapter_filename(chapter_number: int, name: str) -> str:
    """``NN_<safe_name>.md``, e.g. ``01_query_engine.md``."""
    safe_name = _UNSAFE_NAME_RE.sub("_", name).lower()
    return f"{chapter_number:02d}_{safe_name}.md"


def placeholder_chapter(chapter_number: int, name: str, description: str, reason: str) -> str:
    """Templated chapter used when the chapter call or its output failed."""
    return (
        f"{chapter_heading(chapter_number, name)}\n\n"
        f"{description}\n\n"
        f"> This chapter could not be generated automatically ({reason}).\n"
    )


def first_paragraph(content: str) -> str:
    """First prose paragraph of a Markdown text: no headings, fences or quotes."""
    paragraph: list[str] = []
    in_fence = False
    for line in content.split("\n"):
        stripped = line.strip()
        if _FENCE_RE.match(stripped):
            in_fence = not in_fence
            if paragraph:
                break
            continue
        if in_fence:
            continue
        if not stripped:
            if paragraph:
                break
            continue
        if stripped.startswith(("#", ">", "|")):
            if paragraph:
                break
            continue
        paragraph.append(stripped)
    return " ".join(paragraph)


def condense_chapter(chapter_number: int, name: str, content: str, fallback: str) -> str:
    """One-line summary of a written chapter for the running summary."""
    text = first_paragraph(content) or fallback
    if len(text) > SUMMARY_CHARS:
        text = text[: SUMMARY_CHARS - 1].rstrip() + "…"
    return f"Chapter {chapter_number} ({name}): {text}"
