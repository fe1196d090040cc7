from __future__ import annotations

from conftest import make_fragment

from ingestion.schemas import PLACEHOLDER_TITLE
from ingestion.structurer import (
    CorpusStats,
    FontSizeHeadingClassifier,
    HeadingDecision,
    heading_level,
    structure_document,
    structure_markdown,
)


def test_empty_input_gives_no_sections_and_placeholder_title() -> None:
    document = structure_document([])

    assert document.sections == []
    assert document.title == PLACEHOLDER_TITLE


def test_uniform_font_size_yields_single_introduction_section() -> None:
    fragments = [make_fragment(f"Line {i} of the syllabus body.", size=11.0) for i in range(6)]

    document = structure_document(fragments)

    assert len(document.sections) == 1
    section = document.sections[0]
    assert section.title == "Introduction"
    assert section.synthetic is True
    assert section.level == 1
    assert section.content.startswith("Line 0 of the syllabus body.")
    assert len(section.fragments) == 6


def test_headings_split_sections_and_levels_follow_font_ratio() -> None:
    fragments = [
        make_fragment("Operating Systems", size=30),
        make_fragment("Unit 1: Processes", size=18),
        make_fragment("A process is a program in execution.", size=10),
        make_fragment("It has its own address space.", size=10),
        make_fragment("Scheduling", size=16),
        make_fragment("Round robin uses a time quantum.", size=10),
    ]
    fragments += [make_fragment(f"Scheduling detail {i}.", size=10) for i in range(7)]

    document = structure_document(fragments)

    titles = [s.title for s in document.sections]
    assert titles == ["Operating Systems", "Unit 1: Processes", "Scheduling"]
    assert [s.id for s in document.sections] == ["section-1", "section-2", "section-3"]
    assert document.title == "Operating Systems"

    mean = sum(f.font_size for f in fragments) / len(fragments)
    assert [s.level for s in document.sections] == [1, 2, 2]
    assert document.sections[0].level == heading_level(30, mean)
    assert document.sections[0].content == ""
    assert document.sections[1].content == "A process is a program in execution. It has its own address space."
    assert document.sections[2].content.startswith("Round robin")
    assert document.total_fragments == len(fragments)


def test_leading_body_text_gets_synthetic_introduction() -> None:
    fragments = [
        make_fragment("Welcome to the course.", size=10),
        make_fragment("Memory Management", size=20),
        make_fragment("Paging divides memory into frames.", size=10),
        make_fragment("Segments are variable sized.", size=10),
    ]

    document = structure_document(fragments)

    assert [s.title for s in document.sections] == ["Introduction", "Memory Management"]
    assert document.sections[0].synthetic
    assert not document.sections[1].synthetic
    assert "Introduction" not in document.full_text
    assert document.full_text.startswith("Welcome to the course.\n\nMemory Management\nPaging")


def test_numeric_and_long_large_fragments_are_not_headings() -> None:
    long_text = "x" * 120
    fragments = [
        make_fragment("Body text line one.", size=10),
        make_fragment("42", size=24),
        make_fragment(long_text, size=24),
        make_fragment("Body text line two.", size=10),
        make_fragment("Body text line three.", size=10),
    ]

    document = structure_document(fragments)

    assert len(document.sections) == 1
    assert "42" in document.sections[0].content
    assert long_text in document.sections[0].content


def test_title_is_largest_font_on_first_page() -> None:
    fragments = [
        make_fragment("Course Handbook", size=16, page=1),
        make_fragment("Data Structures", size=22, page=1),
        make_fragment("Huge page two banner", size=40, page=2),
        make_fragment("Body", size=10, page=2),
    ]

    assert structure_document(fragments).title == "Data Structures"


def test_title_falls_back_when_page_one_is_empty() -> None:
    fragments = [make_fragment("Only page two", size=12, page=2)]

    assert structure_document(fragments).title == PLACEHOLDER_TITLE


def test_classifier_is_swappable() -> None:
    class EveryLineStartingWithUnit:
        def classify_fragment(self, fragment, stats):
            if fragment.text.startswith("Unit"):
                return HeadingDecision(True, 2)
            return HeadingDecision(False)

    fragments = [
        make_fragment("Unit A", size=10),
        make_fragment("alpha", size=10),
        make_fragment("Unit B", size=10),
        make_fragment("beta", size=10),
    ]

    document = structure_document(fragments, classifier=EveryLineStartingWithUnit())

    assert [(s.title, s.level, s.content) for s in document.sections] == [
        ("Unit A", 2, "alpha"),
        ("Unit B", 2, "beta"),
    ]


def test_default_classifier_thresholds() -> None:
    stats = CorpusStats(mean_font_size=10.0, max_font_size=20.0, header_threshold=12.0, total_fragments=10)
    classifier = FontSizeHeadingClassifier()

    assert classifier.classify_fragment(make_fragment("Heading", size=15), stats) == HeadingDecision(True, 1)
    assert classifier.classify_fragment(make_fragment("Heading", size=12), stats) == HeadingDecision(True, 2)
    assert classifier.classify_fragment(make_fragment("Heading", size=11.9), stats).is_heading is False


def test_structure_markdown_uses_hash_headings() -> None:
    text = "Preface text.\n\n# Unit 1\nProcesses and threads.\n\n## Scheduling\nFCFS and SJF."

    document = structure_markdown(text)

    assert [(s.title, s.level, s.synthetic) for s in document.sections] == [
        ("Introduction", 1, True),
        ("Unit 1", 1, False),
        ("Scheduling", 2, False),
    ]
    assert document.title == "Unit 1"
    assert document.sections[2].content == "FCFS and SJF."
