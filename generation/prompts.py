"""
Prompt construction for one work unit.

Context = retrieved passages (if any) followed by the chunk text, cut to
MAX_CONTEXT_TOKENS using the chunker's token estimate.
"""

from typing import List, Optional

from ingestion.chunker import CHARS_PER_TOKEN, estimate_tokens
from ingestion.schemas import ContentChunk
from .schemas import MARKS_BY_DIFFICULTY, WorkUnit

MAX_CONTEXT_TOKENS = 6000

SYSTEM_PROMPT = (
    "You are an expert academic question generator for university-level exams. "
    "Output only valid JSON."
)


# ─── Tier descriptors ──────────────────────────────────────────────────────────

BLOOM_DESCRIPTORS = {
    "remember": "Recall facts, terms and basic concepts. Verbs: define, list, identify, name, state.",
    "understand": "Explain and interpret concepts. Verbs: explain, summarize, interpret, compare, contrast.",
    "apply": "Use knowledge in new situations. Verbs: apply, demonstrate, calculate, solve, implement.",
    "analyze": "Break information down and find relationships. Verbs: analyze, examine, categorize, differentiate.",
    "evaluate": "Make and justify judgments. Verbs: evaluate, justify, critique, assess.",
    "create": "Combine ideas into something new. Verbs: design, develop, formulate, construct.",
}

DIFFICULTY_DESCRIPTORS = {
    "easy": "Basic level, clear and direct; suitable as an introduction to the topic.",
    "medium": "Intermediate; requires good understanding and some analysis or calculation.",
    "hard": "Advanced; requires deep understanding, multi-step reasoning or complex scenarios.",
}

ANY_TIER = "any"


# ─── Prompt template ───────────────────────────────────────────────────────────

QUESTION_PROMPT = """Generate exactly {count} exam question(s) from the context below.

CONTEXT (section: {chunk_title}):
---
{context_text}
---

REQUIREMENTS:
- Difficulty: {difficulty} - {difficulty_descriptor}
- Bloom's Level: {bloom_level} - {bloom_descriptor}
- Marks per question: {marks}
{topics_line}
OUTPUT FORMAT - respond with ONLY a JSON object, no markdown, no explanation:
{{
  "questions": [
    {{
      "question_text": "<clear, self-contained question>",
      "answer_text": "<model answer or key points, length proportional to marks>",
      "difficulty": "<easy|medium|hard>",
      "bloom_level": "<remember|understand|apply|analyze|evaluate|create>",
      "marks": {marks},
      "topic": "<short topic name>"
    }}
  ]
}}

RULES:
1. Base every question strictly on the context
2. Do NOT start with "According to the passage" or "Based on the text"
3. Questions must not repeat each other
4. Return exactly {count} question(s)
"""


def build_context(chunk: ContentChunk, passages: Optional[List[str]] = None,
                  max_tokens: int = MAX_CONTEXT_TOKENS) -> str:
    """Retrieved passages first, then the chunk body; truncated to max_tokens."""
    parts = [p.strip() for p in (passages or []) if p and p.strip()]
    parts.append(chunk.content.strip())
    context = "\n\n---\n\n".join(parts)
    if estimate_tokens(context) > max_tokens:
        context = context[: max_tokens * CHARS_PER_TOKEN].rsplit(" ", 1)[0]
    return context


def build_prompt(unit: WorkUnit, chunk: ContentChunk, passages: Optional[List[str]] = None) -> str:
    difficulty = unit.difficulty or ANY_TIER
    bloom = unit.bloom_level or ANY_TIER
    marks = MARKS_BY_DIFFICULTY.get(unit.difficulty, MARKS_BY_DIFFICULTY["medium"])
    keywords = chunk.metadata.topic_keywords
    topics_line = f"- Focus topics: {', '.join(keywords)}\n" if keywords else ""
    return QUESTION_PROMPT.format(
        count=unit.count,
        chunk_title=chunk.title,
        context_text=build_context(chunk, passages),
        difficulty=difficulty,
        difficulty_descriptor=DIFFICULTY_DESCRIPTORS.get(difficulty, "choose what suits the content"),
        bloom_level=bloom,
        bloom_descriptor=BLOOM_DESCRIPTORS.get(bloom, "choose what suits the content"),
        marks=marks,
        topics_line=topics_line,
    )
