"""
Material processing
CourseMaterial file → extract → structure → cached on the material row

A processed material keeps its sections (without fragments) in sections_data,
so later jobs on the same material go straight to chunking.
"""

import logging
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from database import crud
from database.models import CourseMaterial
from generation.errors import ExtractionError
from .extractor import extract_fragments
from .schemas import Section, StructuredDocument, TextFragment
from .structurer import HeadingClassifier, structure_document

log = logging.getLogger(__name__)

Extractor = Callable[[str], List[TextFragment]]
ChunkIndexer = Callable[[CourseMaterial, StructuredDocument], None]


def document_from_material(material: CourseMaterial) -> StructuredDocument:
    """Rebuild the cached StructuredDocument of a processed material."""
    sections = [Section(**s) for s in (material.sections_data or [])]
    return StructuredDocument(
        title=material.document_title or material.title,
        sections=sections,
        total_pages=material.total_pages or 0,
    )


def process_material(
    db: Session,
    material: CourseMaterial,
    extractor: Extractor = extract_fragments,
    classifier: Optional[HeadingClassifier] = None,
    indexer: Optional[ChunkIndexer] = None,
    force: bool = False,
) -> StructuredDocument:
    """
    Return the material's structured document, extracting it on first use.

    Raises:
        ExtractionError: no file, or the file cannot be read
    """
    if material.is_processed and material.sections_data is not None and not force:
        return document_from_material(material)

    if not material.file_path:
        raise ExtractionError(f"Material {material.id} has no uploaded file; re-upload it")

    log.info(f"[MATERIAL {material.id}] processing '{material.title}'")
    fragments = extractor(material.file_path)
    document = structure_document(fragments, classifier=classifier)
    if not document.sections:
        raise ExtractionError(f"No text sections found in material {material.id}; re-upload it")

    sections_data = [s.model_dump(exclude={"fragments"}) for s in document.sections]
    crud.save_material_structure(
        db,
        material,
        document_title=document.title,
        full_text=document.full_text,
        sections_data=sections_data,
        total_pages=document.total_pages,
    )
    log.info(
        f"[MATERIAL {material.id}] processed: title='{document.title}' "
        f"sections={len(document.sections)} pages={document.total_pages}"
    )

    if indexer is not None:
        try:
            indexer(material, document)
        except Exception as e:
            log.warning(f"[MATERIAL {material.id}] chunk indexing failed, retrieval will be skipped: {e}")
    return document
