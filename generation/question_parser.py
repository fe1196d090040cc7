"""
Defensive parsing of model output into GeneratedQuestionItems.

The response is untrusted: it may be wrapped in ``` fences, carry trailing
commas or unquoted keys, use camelCase or legacy field names, or contain
more questions than asked for. Anything that cannot be turned into a
question with non-empty text is dropped; a response with no usable
question at all is a GenerationUnitError.
"""

import logging
import re
from typing import Any, List, Optional

import json_repair
from pydantic import ValidationError

from .errors import GenerationUnitError
from .schemas import (
    MARKS_BY_DIFFICULTY,
    GeneratedQuestionItem,
    WorkUnit,
    normalise_bloom,
    normalise_difficulty,
)

log = logging.getLogger("generation.pipeline")

DEFAULT_DIFFICULTY = "medium"
DEFAULT_BLOOM = "understand"
MIN_QUESTION_LENGTH = 5

QUESTION_KEYS = ("question_text", "questionText", "question", "text")
ANSWER_KEYS = ("answer_text", "answerText", "answer", "answer_key", "model_answer")
DIFFICULTY_KEYS = ("difficulty", "difficulty_level", "difficultyLevel")
BLOOM_KEYS = ("bloom_level", "bloomLevel", "bloom", "blooms_level")
MARKS_KEYS = ("marks", "mark", "points")
TOPIC_KEYS = ("topic", "topic_name", "unit_topic")


# ─── JSON extraction ───────────────────────────────────────────────────────────

def _extract_json(raw: str) -> Any:
    """Strip code fences, find the outermost JSON value, repair and load it."""
    raw = (raw or "").strip()
    raw = re.sub(r"^```(?:json)?\s*", "", raw, flags=re.MULTILINE)
    raw = re.sub(r"\s*```$", "", raw, flags=re.MULTILINE)
    starts = [i for i in (raw.find("{"), raw.find("[")) if i != -1]
    if not starts:
        raise ValueError(f"No JSON in LLM response: {raw[:200]}")
    start = min(starts)
    closer = "}" if raw[start] == "{" else "]"
    end = raw.rfind(closer) + 1
    if end <= start:
        end = len(raw)
    return json_repair.loads(raw[start:end])


def _strip_markdown(text: str) -> str:
    text = re.sub(r"\*\*(.+?)\*\*", r"\1", text)
    text = re.sub(r"__(.+?)__", r"\1", text)
    text = re.sub(r"`([^`]*)`", r"\1", text)
    text = re.sub(r"^\s*#{1,6}\s*", "", text, flags=re.MULTILINE)
    text = re.sub(r"^\s*(?:Q(?:uestion)?\s*\d+\s*[:.)-]|\d+\s*[.)])\s*", "", text, flags=re.IGNORECASE)
    return text.strip()


def _first(item: dict, keys) -> Optional[Any]:
    for key in keys:
        value = item.get(key)
        if value not in (None, ""):
            return value
    return None


def _raw_items(data: Any) -> List[dict]:
    if isinstance(data, list):
        return [d for d in data if isinstance(d, dict)]
    if isinstance(data, dict):
        for key in ("questions", "items", "data"):
            if isinstance(data.get(key), list):
                return [d for d in data[key] if isinstance(d, dict)]
        if _first(data, QUESTION_KEYS):
            return [data]
    return []


def _marks(value: Any, difficulty: str) -> int:
    try:
        marks = int(float(value))
        if marks > 0:
            return marks
    except (TypeError, ValueError):
        pass
    return MARKS_BY_DIFFICULTY.get(difficulty, MARKS_BY_DIFFICULTY[DEFAULT_DIFFICULTY])


def normalise_item(item: dict, unit: WorkUnit) -> Optional[GeneratedQuestionItem]:
    """
    Map one raw dict onto GeneratedQuestionItem.
    The unit's own tiers win over what the model claims; "any" tiers take the
    model's value when it is recognisable.
    """
    question = _first(item, QUESTION_KEYS)
    if not isinstance(question, str):
        return None
    question = _strip_markdown(question)
    if len(question) < MIN_QUESTION_LENGTH:
        return None

    answer = _first(item, ANSWER_KEYS)
    if answer is not None and not isinstance(answer, str):
        answer = str(answer)
    difficulty = unit.difficulty or normalise_difficulty(_first(item, DIFFICULTY_KEYS)) or DEFAULT_DIFFICULTY
    bloom = unit.bloom_level or normalise_bloom(_first(item, BLOOM_KEYS)) or DEFAULT_BLOOM
    topic = _first(item, TOPIC_KEYS)

    try:
        return GeneratedQuestionItem(
            question_text=question,
            answer_text=_strip_markdown(answer) if answer else None,
            difficulty=difficulty,
            bloom_level=bloom,
            marks=_marks(_first(item, MARKS_KEYS), difficulty),
            topic=str(topic)[:500] if topic else None,
        )
    except ValidationError as e:
        log.debug(f"[PARSE] dropped item: {e}")
        return None


def parse_generated_questions(raw: str, unit: WorkUnit) -> List[GeneratedQuestionItem]:
    """
    Parse a model response for one work unit. Returns at most unit.count items,
    deduplicated on question text.

    Raises:
        GenerationUnitError: response is not JSON or holds no usable question
    """
    try:
        data = _extract_json(raw)
    except (ValueError, TypeError) as e:
        raise GenerationUnitError(unit.label, f"unparsable response ({e})") from e

    items: List[GeneratedQuestionItem] = []
    seen = set()
    for raw_item in _raw_items(data):
        item = normalise_item(raw_item, unit)
        if item is None:
            continue
        key = item.question_text.lower()
        if key in seen:
            continue
        seen.add(key)
        items.append(item)
        if len(items) >= unit.count:
            break

    if not items:
        raise GenerationUnitError(unit.label, "response contained no valid questions")
    if len(items) < unit.count:
        log.info(f"[PARSE] {unit.label}: asked for {unit.count}, got {len(items)}")
    return items
