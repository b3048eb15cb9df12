import json

import pytest

from repo_tutor.domain.entities import Abstraction, Relationship
from repo_tutor.domain.exceptions import MissingStageOutputError
from repo_tutor.services.extraction import (
    DEFAULT_DESCRIPTION,
    FAILED_RELATIONSHIP_SUMMARY,
    MISSING_RELATIONSHIP_SUMMARY,
    coerce_index,
    find_json_fragment,
    parse_abstractions,
    parse_chapter_order,
    parse_relationships,
    repair_order,
)

# ── Abstractions ────────────────────────────────────────────────────────────


def test_well_formed_abstraction_is_parsed_exactly():
    text = '{"abstractions":[{"name":"A","description":"d","category":"service","file_indices":[0,2]}]}'
    result = parse_abstractions(text, file_count=3)

    assert result.ok
    assert result.value == (Abstraction("A", "d", "service", (0, 2)),)


def test_abstractions_in_fenced_block_with_commentary():
    payload = {"abstractions": [{"name": "Router", "description": "Maps URLs", "file_indices": [1]}]}
    text = f"Sure! Here is the analysis.\n\n```json\n{json.dumps(payload, indent=2)}\n```\nHope it helps."
    result = parse_abstractions(text, file_count=2)

    assert [a.name for a in result.value] == ["Router"]
    assert result.value[0].category == "other"


def test_abstraction_repairs():
    text = json.dumps(
        [
            {"name": "", "description": "nameless"},
            {"description": "no name key"},
            "not an object",
            {"name": "Kept", "files": [0, 5, -1, "1 # util.py", 0, True]},
            {"name": "Lonely", "description": "no files", "file_indices": []},
        ]
    )
    result = parse_abstractions(text, file_count=2)

    assert result.ok
    assert [a.name for a in result.value] == ["Kept", "Lonely"]
    kept, lonely = result.value
    assert kept.description == DEFAULT_DESCRIPTION
    assert kept.file_indices == (0, 1)
    assert lonely.file_indices == ()


def test_abstractions_without_structured_block_fall_back():
    result = parse_abstractions("I could not find any abstractions, sorry.", file_count=4)

    assert result.value == ()
    assert not result.ok


def test_abstractions_with_broken_json_fall_back():
    result = parse_abstractions('```json\n{"abstractions": [{"name": "A",\n```', file_count=1)

    assert result.value == ()
    assert result.error


def test_zero_usable_abstractions_is_an_error():
    result = parse_abstractions('{"abstractions": [{"name": ""}]}', file_count=1)

    assert result.value == ()
    assert result.error


def test_missing_stage_output_raises():
    with pytest.raises(MissingStageOutputError):
        parse_abstractions(None, file_count=1)
    with pytest.raises(MissingStageOutputError):
        parse_relationships(None, abstraction_count=1)
    with pytest.raises(MissingStageOutputError):
        parse_chapter_order(None, abstraction_count=1)


# ── Relationships ───────────────────────────────────────────────────────────


def test_relationships_json_drops_invalid_entries():
    payload = {
        "summary": "  A small project.  ",
        "relationships": [
            {"from": 0, "to": 1, "label": "Uses"},
            {"from": 1, "to": 0},
            {"from": 0, "to": 1, "label": 42},
            {"from": 0, "to": 3, "label": "Out of range"},
            {"from": -1, "to": 0, "label": "Negative"},
            {"from": "two", "to": 0, "label": "Not numeric"},
            {"from_abstraction": "2 # C", "to_abstraction": "0 # A", "label": "Configures"},
            "junk",
        ],
    }
    text = f"```json\n{json.dumps(payload)}\n```"
    result = parse_relationships(text, abstraction_count=3)

    assert result.ok
    assert result.value.summary == "A small project."
    assert result.value.relationships == (
        Relationship(0, 1, "Uses"),
        Relationship(2, 0, "Configures"),
    )
    for rel in result.value.relationships:
        assert 0 <= rel.source < 3 and 0 <= rel.target < 3


def test_relationships_yaml_block():
    text = (
        "Analysis below.\n\n```yaml\n"
        "summary: |\n"
        "  Turns requests into responses.\n"
        "relationships:\n"
        "  - from_abstraction: 0 # Router\n"
        "    to_abstraction: 1 # Handler\n"
        '    label: "Dispatches"\n'
        "  - from_abstraction: 1 # Handler\n"
        "    to_abstraction: 9 # Missing\n"
        "    label: Broken\n"
        "```\n"
    )
    result = parse_relationships(text, abstraction_count=2)

    assert result.ok
    assert result.value.summary == "Turns requests into responses."
    assert result.value.relationships == (Relationship(0, 1, "Dispatches"),)


def test_relationships_unfenced_line_dialect():
    text = "Here it is:\nsummary: Parses config files.\nrelationships:\n- from: 1\n  to: 0\n  label: Reads\n"
    result = parse_relationships(text, abstraction_count=2)

    assert result.value.summary == "Parses config files."
    assert result.value.relationships == (Relationship(1, 0, "Reads"),)


def test_relationships_raw_json_fragment():
    text = 'The result is {"summary": "S", "relationships": [{"from": 0, "to": 0, "label": "Recurses"}]} as requested.'
    result = parse_relationships(text, abstraction_count=1)

    assert result.value.relationships == (Relationship(0, 0, "Recurses"),)


def test_relationships_default_summary_when_missing():
    result = parse_relationships('{"relationships": []}', abstraction_count=2)

    assert result.ok
    assert result.value.summary == MISSING_RELATIONSHIP_SUMMARY
    assert result.value.relationships == ()


@pytest.mark.parametrize(
    "text",
    [
        "No structure here at all.",
        '{"summary": "only a summary"}',
        '{"summary": "s", "relationships": "none"}',
        "```json\n{not json}\n```",
    ],
)
def test_relationships_fall_back_to_default(text):
    result = parse_relationships(text, abstraction_count=2)

    assert not result.ok
    assert result.value.summary == FAILED_RELATIONSHIP_SUMMARY
    assert result.value.relationships == ()


# ── Chapter order ───────────────────────────────────────────────────────────


@pytest.mark.parametrize(
    ("entries", "count"),
    [
        ([], 4),
        ([3, 1], 4),
        ([0, 0, 1, 1], 3),
        ([7, -2, "x", None, 2.5, 1], 3),
        (["2 # Config", "0 # Router"], 3),
        ([2, 1, 0], 3),
        ([5, 4, 3, 2, 1, 0, 0, 9], 6),
        ([1], 1),
    ],
)
def test_repaired_order_is_a_permutation(entries, count):
    order = repair_order(entries, count)

    assert len(order) == count
    assert sorted(order) == list(range(count))


def test_repair_keeps_first_occurrence_and_appends_missing_ascending():
    assert repair_order([3, 1, 3, 9, "a"], 5) == (3, 1, 0, 2, 4)


def test_chapter_order_from_fenced_json():
    result = parse_chapter_order('```json\n{"order": [2, 0]}\n```', abstraction_count=3)

    assert result.ok
    assert result.value == (2, 0, 1)


def test_chapter_order_from_bare_array():
    result = parse_chapter_order("Best order: [1, 0]", abstraction_count=2)

    assert result.value == (1, 0)


def test_unparseable_order_falls_back_to_identity():
    result = parse_chapter_order("Start with the router, then the handlers.", abstraction_count=3)

    assert result.value == (0, 1, 2)
    assert result.error


# ── Locate helpers ──────────────────────────────────────────────────────────


def test_json_fragment_prefers_object_with_required_key():
    text = 'Use {placeholders} freely. {"order": [1, 0]} trailing {junk}'

    assert find_json_fragment(text, "order") == '{"order": [1, 0]}'


def test_json_fragment_ignores_braces_inside_strings():
    text = '{"summary": "uses {curly} braces", "relationships": []} and more }'

    assert json.loads(find_json_fragment(text)) == {"summary": "uses {curly} braces", "relationships": []}


@pytest.mark.parametrize(
    ("value", "expected"),
    [(3, 3), (2.0, 2), ("4 # Name", 4), (" 1", 1), (True, None), (2.5, None), ("abc", None), (None, None)],
)
def test_coerce_index(value, expected):
    assert coerce_index(value) == expected
