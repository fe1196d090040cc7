"""
Content Chunker
Sections (or flat text) → token-bounded ContentChunks

Methods:
  by-heading  accumulate whole sections up to max_tokens_per_chunk; a chunk that is
              still under min_tokens_per_chunk borrows the head of the next section
              (split on a paragraph / sentence / word boundary) instead of closing small
  by-tokens   ignore headings, pack the text into max-size pieces
  hybrid      section-aware, but always fill each chunk up to the ceiling

Guarantees:
  - every chunk has tokens ≤ max_tokens_per_chunk (a single word longer than the
    ceiling is the only thing ever cut mid-word)
  - chunks are contiguous and ordered; joining their bodies with blank lines gives
    back the source text modulo whitespace
  - if the whole source fits the ceiling it comes back as one "Full Content" chunk

Token estimate: ceil(len / 4). The job runner uses the same estimate for prompt budgets.
"""

import logging
import re
from collections import Counter, deque
from dataclasses import dataclass, replace
from typing import Deque, List, Optional, Tuple

from .schemas import (
    ChunkingConfig,
    ChunkMetadata,
    ContentChunk,
    Section,
    StructuredDocument,
)
from .structurer import structure_markdown

log = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4
MAX_KEYWORDS = 10
FULL_CONTENT_TITLE = "Full Content"
TITLE_SEPARATOR = " → "

_SENTENCE_END_RE = re.compile(r"[.!?][\"')\]]?\s+")
_NUMBERED_ITEM_RE = re.compile(r"^\s*\d+[.)]\s+(.+)$", re.MULTILINE)
_EMPHASIS_RES = [
    re.compile(r"\*\*([^*\n]{2,60})\*\*"),
    re.compile(r"__([^_\n]{2,60})__"),
    re.compile(r"(?<![*\w])\*([^*\s][^*\n]{1,58})\*(?![*\w])"),
    re.compile(r"(?<![_\w])_([^_\s][^_\n]{1,58})_(?![_\w])"),
    re.compile(r"[\"“]([^\"”\n]{3,60})[\"”]"),
]
_WORD_RE = re.compile(r"[a-z0-9]+")

STOPWORDS = {
    "about", "above", "after", "again", "against", "among", "being", "below", "between",
    "could", "doing", "during", "every", "having", "other", "should", "their", "there",
    "these", "those", "through", "under", "until", "where", "which", "while", "would",
}


def estimate_tokens(text: str) -> int:
    """Rough token count: one token per 4 characters, rounded up."""
    if not text:
        return 0
    return (len(text) + CHARS_PER_TOKEN - 1) // CHARS_PER_TOKEN


# ─── Keywords ──────────────────────────────────────────────────────────────────

def extract_keywords(text: str, limit: int = MAX_KEYWORDS) -> List[str]:
    """
    Numbered-list items and emphasised terms first (in order of appearance),
    then the most frequent words longer than 4 characters.
    """
    keywords: List[str] = []
    seen = set()

    def _add(term: str) -> None:
        term = " ".join(term.strip(" \t*_:;,.").split())
        if len(term) > 60:
            term = " ".join(term[:60].split()[:-1]) or term[:60]
        key = term.lower()
        if term and key not in seen and len(keywords) < limit:
            seen.add(key)
            keywords.append(term)

    for match in _NUMBERED_ITEM_RE.finditer(text):
        _add(match.group(1))
    for pattern in _EMPHASIS_RES:
        for match in pattern.finditer(text):
            _add(match.group(1))

    if len(keywords) < limit:
        words = [w for w in _WORD_RE.findall(text.lower()) if len(w) > 4 and w not in STOPWORDS and not w.isdigit()]
        for word, _ in Counter(words).most_common():
            if len(keywords) >= limit:
                break
            _add(word)
    return keywords


# ─── Boundary splitting ────────────────────────────────────────────────────────

def _find_cut(text: str, max_chars: int) -> int:
    """
    Index at which to cut text so that text[:cut] fits max_chars.
    Prefers a paragraph break, then a sentence end, then whitespace.
    Returns 0 when the first word alone is longer than max_chars.
    """
    if len(text) <= max_chars:
        return len(text)
    window = text[:max_chars + 1]

    para = window.rfind("\n\n")
    if para > 0:
        return para

    sentence_cut = 0
    for match in _SENTENCE_END_RE.finditer(window):
        end = match.start() + len(match.group().rstrip())
        if end <= max_chars:
            sentence_cut = end
    if sentence_cut > 0:
        return sentence_cut

    for i in range(min(max_chars, len(window) - 1), 0, -1):
        if window[i].isspace():
            return i
    return 0


def split_text(text: str, max_tokens: int) -> List[Tuple[str, int]]:
    """
    Split text into pieces of at most max_tokens each.
    Returns (piece, offset) pairs where offset is the piece's start index in text.
    """
    max_chars = max_tokens * CHARS_PER_TOKEN
    pieces: List[Tuple[str, int]] = []
    pos = 0
    length = len(text)
    while pos < length:
        while pos < length and text[pos].isspace():
            pos += 1
        if pos >= length:
            break
        rest = text[pos:]
        cut = _find_cut(rest, max_chars)
        if cut == 0:
            # one word longer than the ceiling
            cut = max_chars
        piece = rest[:cut].rstrip()
        if piece:
            pieces.append((piece, pos))
        pos += cut
    return pieces


# ─── Units ─────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class _Unit:
    """A contiguous slice of the source text that the packer moves around whole."""
    text: str
    title: str
    level: int
    start_line: int

    @property
    def end_line(self) -> int:
        return self.start_line + self.text.count("\n")

    @property
    def tokens(self) -> int:
        return estimate_tokens(self.text)


def _line_of(text: str, offset: int) -> int:
    return text.count("\n", 0, offset)


def _split_unit(unit: _Unit, max_tokens: int) -> List[_Unit]:
    pieces = split_text(unit.text, max_tokens)
    if len(pieces) <= 1:
        return [unit]
    return [
        _Unit(
            text=piece,
            title=f"{unit.title} (part {k})",
            level=unit.level,
            start_line=unit.start_line + _line_of(unit.text, offset),
        )
        for k, (piece, offset) in enumerate(pieces, start=1)
    ]


def _take_head(unit: _Unit, max_chars: int) -> Tuple[Optional[_Unit], Optional[_Unit]]:
    """Split off the longest boundary-aligned head of unit that fits max_chars."""
    if max_chars <= 0:
        return None, unit
    cut = _find_cut(unit.text, max_chars)
    if cut <= 0:
        return None, unit
    head_text = unit.text[:cut].rstrip()
    rest = unit.text[cut:]
    tail_text = rest.lstrip()
    if not head_text:
        return None, unit
    head = replace(unit, text=head_text)
    if not tail_text:
        return head, None
    tail_offset = cut + (len(rest) - len(tail_text))
    title = unit.title if unit.title.endswith("(cont.)") else f"{unit.title} (cont.)"
    tail = _Unit(
        text=tail_text,
        title=title,
        level=unit.level,
        start_line=unit.start_line + _line_of(unit.text, tail_offset),
    )
    return head, tail


def _section_units(sections: List[Section]) -> Tuple[List[_Unit], str]:
    """One unit per non-empty section, with line positions in the joined source."""
    units: List[_Unit] = []
    texts: List[str] = []
    line = 0
    for section in sections:
        text = section.text.strip()
        if not text:
            continue
        units.append(_Unit(text=text, title=section.title, level=section.level, start_line=line))
        texts.append(text)
        line += text.count("\n") + 2  # blank separator line
    return units, "\n\n".join(texts)


# ─── Packing ───────────────────────────────────────────────────────────────────

class _ChunkBuilder:
    def __init__(self):
        self.units: List[_Unit] = []

    @property
    def content(self) -> str:
        return "\n\n".join(u.text for u in self.units)

    @property
    def tokens(self) -> int:
        return estimate_tokens(self.content)

    def tokens_with(self, unit: _Unit) -> int:
        if not self.units:
            return unit.tokens
        return estimate_tokens(self.content + "\n\n" + unit.text)

    def remaining_chars(self, max_tokens: int) -> int:
        """Characters a borrowed head may use without breaking the ceiling."""
        return max_tokens * CHARS_PER_TOKEN - len(self.content) - 2

    def build(self, index: int) -> ContentChunk:
        titles: List[str] = []
        for u in self.units:
            if not titles or titles[-1] != u.title:
                titles.append(u.title)
        content = self.content
        return ContentChunk(
            id=f"chunk-{index}",
            title=TITLE_SEPARATOR.join(titles),
            content=content,
            tokens=estimate_tokens(content),
            start_line=self.units[0].start_line,
            end_line=self.units[-1].end_line,
            metadata=ChunkMetadata(
                heading_level=min(u.level for u in self.units),
                has_subsections=len(titles) > 1,
                topic_keywords=extract_keywords(content),
            ),
        )


def _pack(units: List[_Unit], config: ChunkingConfig, always_fill: bool) -> List[ContentChunk]:
    max_tokens = config.max_tokens_per_chunk
    queue: Deque[_Unit] = deque()
    for unit in units:
        queue.extend(_split_unit(unit, max_tokens) if unit.tokens > max_tokens else [unit])

    chunks: List[ContentChunk] = []
    current = _ChunkBuilder()

    def _close() -> None:
        nonlocal current
        if current.units:
            chunks.append(current.build(len(chunks) + 1))
        current = _ChunkBuilder()

    while queue:
        unit = queue.popleft()
        if not current.units:
            current.units.append(unit)
            continue
        if current.tokens_with(unit) <= max_tokens:
            current.units.append(unit)
            continue
        if always_fill or current.tokens < config.min_tokens_per_chunk:
            head, tail = _take_head(unit, current.remaining_chars(max_tokens))
            if head is not None and current.tokens_with(head) <= max_tokens:
                current.units.append(head)
                if tail is not None:
                    queue.appendleft(tail)
                _close()
                continue
        _close()
        current.units.append(unit)
    _close()
    return chunks


# ─── Public API ────────────────────────────────────────────────────────────────

def _full_content_chunk(text: str) -> ContentChunk:
    return ContentChunk(
        id="chunk-1",
        title=FULL_CONTENT_TITLE,
        content=text,
        tokens=estimate_tokens(text),
        start_line=0,
        end_line=text.count("\n"),
        metadata=ChunkMetadata(topic_keywords=extract_keywords(text)),
    )


def chunk_sections(sections: List[Section], config: Optional[ChunkingConfig] = None) -> List[ContentChunk]:
    """
    Chunk an ordered section list. Line markers index into the sections'
    text joined by blank lines (StructuredDocument.full_text).
    """
    config = config or ChunkingConfig()
    units, source = _section_units(sections)
    if not units:
        return []

    if estimate_tokens(source) <= config.max_tokens_per_chunk:
        chunks = [_full_content_chunk(source)]
    elif config.method == "by-tokens":
        chunks = _pack([_Unit(text=source, title="Part", level=1, start_line=0)], config, always_fill=True)
        chunks = [c.model_copy(update={"title": f"Part {i}"}) for i, c in enumerate(chunks, start=1)]
    else:
        chunks = _pack(units, config, always_fill=config.method == "hybrid")

    log.info(
        f"[CHUNKER] method={config.method} source_tokens={estimate_tokens(source)} "
        f"sections={len(units)} chunks={len(chunks)}"
    )
    for chunk in chunks:
        log.debug(f"[CHUNKER]   {chunk.id} '{chunk.title}' ({chunk.tokens} tokens)")
    return chunks


def chunk_document(document: StructuredDocument, config: Optional[ChunkingConfig] = None) -> List[ContentChunk]:
    return chunk_sections(document.sections, config)


def chunk_text(text: str, config: Optional[ChunkingConfig] = None) -> List[ContentChunk]:
    """
    Chunk flat text. Markdown '#' headings act as section boundaries for the
    heading-aware methods.
    """
    config = config or ChunkingConfig()
    if not text or not text.strip():
        return []
    if config.method == "by-tokens" or estimate_tokens(text) <= config.max_tokens_per_chunk:
        section = Section(id="section-1", title=FULL_CONTENT_TITLE, content=text.strip(), synthetic=True)
        return chunk_sections([section], config)
    return chunk_document(structure_markdown(text), config)
