"""
Materials Router — /materials

  POST /materials/upload           — upload a PDF, extract + structure it
  GET  /materials                  — list materials (optionally for one course)
  GET  /materials/{id}             — material summary
  GET  /materials/{id}/structure   — title + sections
  POST /materials/{id}/plan        — dry run: chunks, per-chunk quotas and work units
"""

import logging
import os
import uuid
from pathlib import Path
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from sqlalchemy.orm import Session

from database import crud
from database.database import get_db
from database.schemas import MaterialResponse
from embeddings.retrieval import RETRIEVAL_ENABLED, index_material
from generation.errors import ConfigurationError, ExtractionError
from generation.planner import build_plan
from generation.schemas import ChunkPreview, PlanPreviewRequest, PlanPreviewResponse
from ingestion.material_processor import process_material
from ingestion.schemas import DocumentStructureResponse, SectionSummary

router = APIRouter(prefix="/materials", tags=["materials"])

log = logging.getLogger(__name__)

UPLOAD_DIR = os.getenv("UPLOAD_DIR", "uploads")
MAX_UPLOAD_SIZE = int(os.getenv("MAX_UPLOAD_SIZE", 52428800))  # 50MB default
ALLOWED_EXTENSIONS = {"pdf"}
CHUNK_READ_SIZE = 1024 * 1024


def get_material_indexer():
    """Chunk indexer for retrieval, or None when retrieval is disabled."""
    return index_material if RETRIEVAL_ENABLED else None


def validate_file(file: UploadFile) -> str:
    """Return the lowercase extension of a valid upload or raise 400."""
    if not file.filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Filename is required")
    extension = Path(file.filename).suffix.lower().lstrip(".")
    if extension not in ALLOWED_EXTENSIONS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unsupported file type: .{extension or '?'}. Allowed: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
        )
    return extension


def save_upload_file(upload_file: UploadFile, extension: str) -> str:
    """Stream the upload into UPLOAD_DIR, enforcing MAX_UPLOAD_SIZE."""
    os.makedirs(UPLOAD_DIR, exist_ok=True)
    path = os.path.join(UPLOAD_DIR, f"{uuid.uuid4().hex}.{extension}")
    size = 0
    with open(path, "wb") as out:
        while True:
            chunk = upload_file.file.read(CHUNK_READ_SIZE)
            if not chunk:
                break
            size += len(chunk)
            if size > MAX_UPLOAD_SIZE:
                out.close()
                os.unlink(path)
                raise HTTPException(
                    status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                    detail=f"File too large: max {MAX_UPLOAD_SIZE // 1048576}MB"
                )
            out.write(chunk)
    return path


def _get_material_or_404(db: Session, material_id: int):
    material = crud.get_material(db, material_id)
    if material is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Material {material_id} not found")
    return material


@router.post("/upload", response_model=MaterialResponse, status_code=status.HTTP_201_CREATED)
def upload_material(
    course_id: int = Form(...),
    title: Optional[str] = Form(None),
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    indexer=Depends(get_material_indexer),
):
    """
    Upload a course material PDF. It is extracted and structured right away;
    an unreadable file is rejected with 422 and nothing is stored.
    """
    extension = validate_file(file)
    path = save_upload_file(file, extension)
    material = crud.create_material(db, course_id=course_id, title=title or file.filename, file_path=path)
    try:
        process_material(db, material, indexer=indexer)
    except ExtractionError as e:
        log.warning(f"[UPLOAD] material {material.id} rejected: {e}")
        db.delete(material)
        db.commit()
        if os.path.exists(path):
            os.unlink(path)
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=f"{e}. Please re-upload.")
    return MaterialResponse.from_model(material)


@router.get("", response_model=List[MaterialResponse])
def list_materials(
    course_id: Optional[int] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    return [MaterialResponse.from_model(m) for m in crud.get_materials(db, course_id=course_id, skip=skip, limit=limit)]


@router.get("/{material_id}", response_model=MaterialResponse)
def get_material(material_id: int, db: Session = Depends(get_db)):
    return MaterialResponse.from_model(_get_material_or_404(db, material_id))


@router.get("/{material_id}/structure", response_model=DocumentStructureResponse)
def get_material_structure(
    material_id: int,
    db: Session = Depends(get_db),
    indexer=Depends(get_material_indexer),
):
    material = _get_material_or_404(db, material_id)
    try:
        document = process_material(db, material, indexer=indexer)
    except ExtractionError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=f"{e}. Please re-upload.")
    return DocumentStructureResponse(
        material_id=material.id,
        title=document.title,
        total_pages=document.total_pages or None,
        total_sections=len(document.sections),
        sections=[SectionSummary(**s.model_dump(exclude={"fragments"})) for s in document.sections],
    )


@router.post("/{material_id}/plan", response_model=PlanPreviewResponse)
def preview_plan(
    material_id: int,
    request: PlanPreviewRequest,
    db: Session = Depends(get_db),
    indexer=Depends(get_material_indexer),
):
    """
    **Dry run** of a generation job: how the material is chunked and how the
    requested counts land on each chunk. Nothing is generated or stored.
    """
    material = _get_material_or_404(db, material_id)
    try:
        document = process_material(db, material, indexer=indexer)
        plan = build_plan(document.sections, request.quota_requirement, request.chunking_config)
    except ExtractionError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=f"{e}. Please re-upload.")
    except ConfigurationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return PlanPreviewResponse(
        material_id=material.id,
        total_requested=plan.total_requested,
        chunks=[
            ChunkPreview(
                id=c.id,
                title=c.title,
                tokens=c.tokens,
                start_line=c.start_line,
                end_line=c.end_line,
                topic_keywords=c.metadata.topic_keywords,
            )
            for c in plan.chunks
        ],
        quotas=plan.quotas,
        units=plan.units,
    )
