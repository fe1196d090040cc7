from __future__ import annotations

import json

import pytest

from generation.errors import GenerationUnitError
from generation.question_parser import parse_generated_questions
from generation.schemas import WorkUnit


@pytest.fixture()
def unit() -> WorkUnit:
    return WorkUnit(chunk_id="chunk-1", difficulty="hard", bloom_level="analyze", count=2)


def test_parses_fenced_json(unit) -> None:
    raw = (
        "```json\n"
        + json.dumps({
            "questions": [
                {"question_text": "Compare paging with segmentation.", "answer_text": "Paging uses fixed frames.",
                 "marks": 10, "topic": "Memory"},
            ]
        })
        + "\n```"
    )

    [item] = parse_generated_questions(raw, unit)

    assert item.question_text == "Compare paging with segmentation."
    assert item.answer_text == "Paging uses fixed frames."
    assert item.marks == 10
    assert item.topic == "Memory"


def test_unit_tiers_override_model_claims(unit) -> None:
    raw = json.dumps([{"question": "Define a semaphore precisely.", "difficulty": "easy", "bloom_level": "remember"}])

    [item] = parse_generated_questions(raw, unit)

    assert item.difficulty == "hard"
    assert item.bloom_level == "analyze"
    assert item.marks == 16


def test_any_tier_takes_recognisable_model_value() -> None:
    unit = WorkUnit(chunk_id="chunk-1", difficulty=None, bloom_level="apply", count=1)
    raw = json.dumps({"questions": [{"questionText": "Apply FCFS to this workload.", "difficultyLevel": "Simple"}]})

    [item] = parse_generated_questions(raw, unit)

    assert item.difficulty == "easy"
    assert item.bloom_level == "apply"
    assert item.marks == 2


def test_caps_at_unit_count_and_drops_duplicates(unit) -> None:
    raw = json.dumps({"questions": [
        {"question_text": "Explain thrashing in detail."},
        {"question_text": "explain thrashing in detail."},
        {"question_text": "Why does Belady's anomaly occur?"},
        {"question_text": "What is a TLB and why is it used?"},
    ]})

    items = parse_generated_questions(raw, unit)

    assert [i.question_text for i in items] == [
        "Explain thrashing in detail.",
        "Why does Belady's anomaly occur?",
    ]


def test_strips_markdown_and_numbering(unit) -> None:
    raw = json.dumps({"questions": [{"question_text": "Q1: **Analyse** the `fork()` call."}]})

    [item] = parse_generated_questions(raw, unit)

    assert item.question_text == "Analyse the fork() call."


def test_repairs_trailing_commas(unit) -> None:
    raw = '{"questions": [{"question_text": "Describe the dining philosophers problem.",},]}'

    [item] = parse_generated_questions(raw, unit)

    assert item.question_text.startswith("Describe the dining")


def test_non_json_response_is_a_unit_error(unit) -> None:
    with pytest.raises(GenerationUnitError) as exc:
        parse_generated_questions("I cannot help with that.", unit)

    assert exc.value.unit_label == "chunk-1/hard/analyze"


def test_response_without_usable_questions_is_a_unit_error(unit) -> None:
    raw = json.dumps({"questions": [{"question_text": ""}, {"answer": "orphan answer"}, "not a dict"]})

    with pytest.raises(GenerationUnitError):
        parse_generated_questions(raw, unit)
