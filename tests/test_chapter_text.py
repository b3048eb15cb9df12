import pytest

from repo_tutor.domain.exceptions import MissingStageOutputError
from repo_tutor.services.chapter_text import (
    chapter_filename,
    clean_llm_output,
    condense_chapter,
    first_paragraph,
    placeholder_chapter,
    validate_chapter_content,
)


def test_heading_is_prepended_when_absent():
    content = validate_chapter_content("Welcome to the tour.\n\nMore text.", 3, "Foo")

    assert content.startswith("# Chapter 3: Foo\n\nWelcome to the tour.")


def test_wrong_heading_is_replaced_not_duplicated():
    content = validate_chapter_content("# Chapter 2: Something Else\n\nBody text.", 3, "Foo")

    assert content.startswith("# Chapter 3: Foo\n")
    assert content.count("# Chapter") == 1
    assert "Something Else" not in content
    assert content.endswith("Body text.")


def test_correct_heading_is_kept():
    text = "# Chapter 1: Router\n\nThe router maps URLs."

    assert validate_chapter_content(text, 1, "Router") == text


def test_escaped_and_indented_heading_is_repaired():
    content = validate_chapter_content("   \\# Chapter 4: Cache\n\nText.", 4, "Cache")

    assert content == "# Chapter 4: Cache\n\nText."


def test_indented_heading_inside_code_fence_is_untouched():
    text = "# Chapter 1: A\n\n```text\n    # Chapter 9: Sample\n```\n\n  # Chapter aside"
    content = validate_chapter_content(text, 1, "A")

    assert "\n    # Chapter 9: Sample\n" in content
    assert content.endswith("\n# Chapter aside")


def test_whole_response_markdown_fence_is_unwrapped():
    content = validate_chapter_content("```markdown\n# Chapter 1: A\n\nBody.\n```", 1, "A")

    assert content == "# Chapter 1: A\n\nBody."


def test_empty_chapter_gets_heading_only():
    assert validate_chapter_content("   ", 2, "B") == "# Chapter 2: B\n"


def test_none_chapter_raises():
    with pytest.raises(MissingStageOutputError):
        validate_chapter_content(None, 1, "A")


def test_clean_unescapes_outside_fences():
    text = "\\## Setup\nSee \\[Router\\](01\\_router.md) and \\*bold\\* \\> quote"

    assert clean_llm_output(text) == "## Setup\nSee [Router](01_router.md) and *bold* > quote"


def test_clean_strips_backslashes_only_inside_mermaid():
    text = (
        "\\```mermaid\n"
        "sequenceDiagram\n"
        "    A-\\>\\>B: call\\(\\)\n"
        "```\n"
        "```python\n"
        "print('a\\n', r'\\[x\\]')\n"
        "```"
    )
    cleaned = clean_llm_output(text).split("\n")

    assert cleaned[0] == "```mermaid"
    assert cleaned[2] == "    A->>B: call()"
    assert cleaned[5] == "print('a\\n', r'\\[x\\]')"


def test_chapter_filename():
    assert chapter_filename(1, "Query Engine") == "01_query_engine.md"
    assert chapter_filename(12, "C++ / I-O") == "12_c_____i_o.md"


def test_placeholder_has_heading_and_reason():
    text = placeholder_chapter(2, "Cache", "Keeps things.", "LLM call timed out")

    assert text.startswith("# Chapter 2: Cache\n\nKeeps things.")
    assert "LLM call timed out" in text


def test_first_paragraph_skips_headings_and_code():
    text = "# Chapter 1: A\n\n```python\nx = 1\n```\n\nA does things\nacross lines.\n\nSecond paragraph."

    assert first_paragraph(text) == "A does things across lines."


def test_condense_uses_first_paragraph_or_fallback():
    assert condense_chapter(1, "A", "# Chapter 1: A\n\nIntro here.", "desc") == "Chapter 1 (A): Intro here."
    assert condense_chapter(2, "B", "# Chapter 2: B\n", "desc") == "Chapter 2 (B): desc"

    long_text = "# Chapter 3: C\n\n" + "word " * 200
    condensed = condense_chapter(3, "C", long_text, "desc")
    assert condensed.startswith("Chapter 3 (C): word")
    assert len(condensed) <= len("Chapter 3 (C): ") + 300
    assert condensed.endswith("…")
