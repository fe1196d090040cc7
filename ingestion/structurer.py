"""
Document Structurer
TextFragments → StructuredDocument(title, sections)

Heading detection is a font-size heuristic:
  - header_threshold = 1.2 × mean font size
  - heading iff size ≥ threshold, text shorter than 100 chars, not purely numeric
  - level from size / mean: ≥1.5 → 1, ≥1.2 → 2, else 3

Known limitation: this is approximate. Documents that use bold body-size
headings, or a uniform font size throughout, come out as a single
"Introduction" section. Swap in another HeadingClassifier to do better;
nothing downstream depends on how headings are found.

structure_markdown() builds the same shape from flat markdown text.
"""

import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Protocol

from .schemas import (
    INTRODUCTION_TITLE,
    PLACEHOLDER_TITLE,
    Section,
    StructuredDocument,
    TextFragment,
)

log = logging.getLogger(__name__)

# ─── Heuristic constants ───────────────────────────────────────────────────────

HEADER_THRESHOLD_RATIO = 1.2
LEVEL_1_RATIO = 1.5
LEVEL_2_RATIO = 1.2
MAX_HEADING_LENGTH = 100

_NUMERIC_RE = re.compile(r"^\d+$")
_MD_HEADING_RE = re.compile(r"^(#{1,6})\s+(.+?)\s*#*\s*$")


# ─── Heading classification strategy ──────────────────────────────────────────

@dataclass(frozen=True)
class CorpusStats:
    """Font statistics over every fragment of one document."""
    mean_font_size: float
    max_font_size: float
    header_threshold: float
    total_fragments: int

    @classmethod
    def from_fragments(cls, fragments: List[TextFragment]) -> "CorpusStats":
        if not fragments:
            return cls(0.0, 0.0, 0.0, 0)
        sizes = [f.font_size for f in fragments]
        mean = sum(sizes) / len(sizes)
        return cls(
            mean_font_size=mean,
            max_font_size=max(sizes),
            header_threshold=mean * HEADER_THRESHOLD_RATIO,
            total_fragments=len(fragments),
        )


@dataclass(frozen=True)
class HeadingDecision:
    is_heading: bool
    level: int = 1


class HeadingClassifier(Protocol):
    def classify_fragment(self, fragment: TextFragment, stats: CorpusStats) -> HeadingDecision:
        ...


class FontSizeHeadingClassifier:
    """Default strategy: larger-than-average short lines are headings."""

    def classify_fragment(self, fragment: TextFragment, stats: CorpusStats) -> HeadingDecision:
        text = fragment.text.strip()
        if not text or stats.mean_font_size <= 0:
            return HeadingDecision(False)
        if fragment.font_size < stats.header_threshold:
            return HeadingDecision(False)
        if len(text) >= MAX_HEADING_LENGTH or _NUMERIC_RE.match(text):
            return HeadingDecision(False)
        return HeadingDecision(True, heading_level(fragment.font_size, stats.mean_font_size))


def heading_level(font_size: float, mean_font_size: float) -> int:
    ratio = font_size / mean_font_size if mean_font_size else 0.0
    if ratio >= LEVEL_1_RATIO:
        return 1
    if ratio >= LEVEL_2_RATIO:
        return 2
    return 3


# ─── Title ─────────────────────────────────────────────────────────────────────

def detect_title(fragments: List[TextFragment]) -> str:
    """Largest-font fragment on page 1; the first one wins ties."""
    best: Optional[TextFragment] = None
    for fragment in fragments:
        if fragment.page != 1 or not fragment.text.strip():
            continue
        if best is None or fragment.font_size > best.font_size:
            best = fragment
    return best.text.strip() if best else PLACEHOLDER_TITLE


# ─── Structuring ───────────────────────────────────────────────────────────────

class _SectionBuilder:
    def __init__(self, index: int, title: str, level: int, page: int, synthetic: bool = False,
                 heading: Optional[TextFragment] = None):
        self.id = f"section-{index}"
        self.title = title
        self.level = level
        self.page = page
        self.synthetic = synthetic
        self.parts: List[str] = []
        self.fragments: List[TextFragment] = [heading] if heading else []

    def add(self, fragment: TextFragment) -> None:
        self.parts.append(fragment.text.strip())
        self.fragments.append(fragment)

    def build(self) -> Section:
        return Section(
            id=self.id,
            title=self.title,
            level=self.level,
            page=self.page,
            content=" ".join(p for p in self.parts if p).strip(),
            fragments=self.fragments,
            synthetic=self.synthetic,
        )


def structure_document(
    fragments: List[TextFragment],
    classifier: Optional[HeadingClassifier] = None,
) -> StructuredDocument:
    """
    Group fragments into sections in document order.

    Leading body text before the first heading goes into a synthetic
    "Introduction" section so nothing is dropped.
    """
    classifier = classifier or FontSizeHeadingClassifier()
    stats = CorpusStats.from_fragments(fragments)
    title = detect_title(fragments)

    if not fragments:
        log.info("[STRUCTURE] no fragments, returning empty document")
        return StructuredDocument(title=title)

    builders: List[_SectionBuilder] = []
    current: Optional[_SectionBuilder] = None

    for fragment in fragments:
        decision = classifier.classify_fragment(fragment, stats)
        if decision.is_heading:
            current = _SectionBuilder(
                len(builders) + 1,
                fragment.text.strip(),
                decision.level,
                fragment.page,
                heading=fragment,
            )
            builders.append(current)
            continue
        if current is None:
            current = _SectionBuilder(1, INTRODUCTION_TITLE, 1, fragment.page, synthetic=True)
            builders.append(current)
        current.add(fragment)

    sections = [b.build() for b in builders]
    log.info(
        f"[STRUCTURE] title='{title}' sections={len(sections)} "
        f"fragments={stats.total_fragments} mean_font={stats.mean_font_size:.2f}"
    )
    return StructuredDocument(
        title=title,
        sections=sections,
        total_pages=max(f.page for f in fragments),
        total_fragments=stats.total_fragments,
        average_font_size=round(stats.mean_font_size, 2),
    )


def structure_markdown(text: str, title: Optional[str] = None) -> StructuredDocument:
    """
    Build sections from flat markdown: '#' lines are headings (level = number of '#'),
    everything else is body. Body lines keep their line breaks.
    """
    builders: List[_SectionBuilder] = []
    current: Optional[_SectionBuilder] = None
    body: dict = {}

    for line in (text or "").splitlines():
        match = _MD_HEADING_RE.match(line.strip())
        if match:
            current = _SectionBuilder(len(builders) + 1, match.group(2).strip(), len(match.group(1)), 1)
            builders.append(current)
            body[current.id] = []
            continue
        if current is None:
            if not line.strip():
                continue
            current = _SectionBuilder(1, INTRODUCTION_TITLE, 1, 1, synthetic=True)
            builders.append(current)
            body[current.id] = []
        body[current.id].append(line)

    sections = [
        Section(
            id=b.id,
            title=b.title,
            level=b.level,
            page=1,
            content="\n".join(body[b.id]).strip(),
            synthetic=b.synthetic,
        )
        for b in builders
    ]
    if title is None:
        heading = next((s for s in sections if not s.synthetic and s.level == 1), None)
        title = heading.title if heading else PLACEHOLDER_TITLE
    return StructuredDocument(title=title, sections=sections, total_pages=1 if sections else 0)
