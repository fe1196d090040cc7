"""Shared fixtures: in-memory SQLite database, fragment and material factories."""
from __future__ import annotations

import os
import tempfile

os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="uploads_"))
os.environ["RETRIEVAL_ENABLED"] = "false"

from typing import Iterator, List

import pytest

from database import crud
from database.database import Base, SessionLocal, engine
from database import models  # noqa: F401
from ingestion.schemas import Section, TextFragment


@pytest.fixture()
def db() -> Iterator:
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


def make_fragment(text: str, size: float = 10.0, page: int = 1, y: float = 0.0) -> TextFragment:
    return TextFragment(text=text, page=page, x=72.0, y=y, width=len(text) * size * 0.5, font_size=size)


def make_sections(bodies: List[int], title_prefix: str = "Topic") -> List[Section]:
    """Sections whose body is roughly `n` characters of prose each."""
    sections = []
    for i, length in enumerate(bodies, start=1):
        sentence = f"Concept {i} covers scheduling and memory management in depth. "
        body = (sentence * (length // len(sentence) + 1))[:length].rstrip()
        sections.append(Section(id=f"section-{i}", title=f"{title_prefix} {i}", level=1, page=1, content=body))
    return sections


@pytest.fixture()
def fragment():
    return make_fragment


@pytest.fixture()
def material_factory(db):
    def _create(sections: List[Section], course_id: int = 7, title: str = "Operating Systems"):
        material = crud.create_material(db, course_id=course_id, title=title, file_path=None)
        full_text = "\n\n".join(s.text for s in sections)
        return crud.save_material_structure(
            db,
            material,
            document_title=title,
            full_text=full_text,
            sections_data=[s.model_dump(exclude={"fragments"}) for s in sections],
            total_pages=1,
        )
    return _create
