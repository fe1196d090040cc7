"""
SQLAlchemy models for the question generation engine
CourseMaterial → GenerationJob → GeneratedQuestion

CourseMaterial caches the structuring result (title, full text, sections)
so repeat jobs on the same upload skip extraction.
GenerationJob is the only mutable, externally polled record.
"""

from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, DateTime, Text, JSON, Enum as SQLEnum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import enum
from database.database import Base


class JobStatus(str, enum.Enum):
    """Lifecycle of a generation job"""
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


TERMINAL_STATUSES = (JobStatus.COMPLETED, JobStatus.FAILED)


# ==========================================
# COURSE MATERIALS
# ==========================================

class CourseMaterial(Base):
    """
    An uploaded source document (syllabus, lecture notes) for a course.
    is_processed flips once extraction + structuring succeeded;
    sections_data then holds the serialised Section list.
    """
    __tablename__ = "course_materials"

    id = Column(Integer, primary_key=True, index=True)
    course_id = Column(Integer, nullable=False, index=True)
    title = Column(String(255), nullable=False)
    file_path = Column(String(1024), nullable=True)
    is_processed = Column(Boolean, default=False, nullable=False)
    document_title = Column(String(500), nullable=True)
    full_text = Column(Text, nullable=True)
    sections_data = Column(JSON, nullable=True)
    total_pages = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    jobs = relationship("GenerationJob", back_populates="material", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<CourseMaterial(id={self.id}, title='{self.title}', processed={self.is_processed})>"


# ==========================================
# GENERATION JOBS
# ==========================================

class GenerationJob(Base):
    """
    One asynchronous generation run over a material.
    PENDING → PROCESSING → COMPLETED | FAILED (both terminal).
    progress is 0–100; FAILED jobs carry progress 0 and an error_message.
    reset_from_job_id links a job created by an administrative reset to the stuck job it replaced.
    """
    __tablename__ = "generation_jobs"

    id = Column(Integer, primary_key=True, index=True)
    course_id = Column(Integer, nullable=False, index=True)
    material_id = Column(Integer, ForeignKey("course_materials.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(
        SQLEnum(JobStatus, name="generation_job_status", values_callable=lambda x: [e.value for e in x]),
        default=JobStatus.PENDING,
        nullable=False,
        index=True,
    )
    progress = Column(Integer, default=0, nullable=False)
    processing_stage = Column(String(50), nullable=True)
    requirement = Column(JSON, nullable=False)         # {"difficulty": {...}, "bloom_levels": {...}}
    chunking_config = Column(JSON, nullable=True)      # {"max_tokens_per_chunk", "min_tokens_per_chunk", "method"}
    total_requested = Column(Integer, default=0, nullable=False)
    generated_count = Column(Integer, default=0, nullable=False)
    total_units = Column(Integer, default=0, nullable=False)
    failed_units = Column(Integer, default=0, nullable=False)
    error_message = Column(Text, nullable=True)
    reset_from_job_id = Column(Integer, ForeignKey("generation_jobs.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    material = relationship("CourseMaterial", back_populates="jobs")
    questions = relationship("GeneratedQuestion", back_populates="job", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<GenerationJob(id={self.id}, status={self.status}, progress={self.progress})>"


class GeneratedQuestion(Base):
    """
    One generated question, persisted as soon as its work unit returns.
    chunk_id references the ContentChunk id ("chunk-3") the question was drawn from.
    marks is the weight metric derived from difficulty when the model omits it.
    """
    __tablename__ = "generated_questions"

    id = Column(Integer, primary_key=True, index=True)
    job_id = Column(Integer, ForeignKey("generation_jobs.id", ondelete="CASCADE"), nullable=False, index=True)
    material_id = Column(Integer, nullable=False, index=True)
    course_id = Column(Integer, nullable=False, index=True)
    chunk_id = Column(String(50), nullable=False)
    question_text = Column(Text, nullable=False)
    answer_text = Column(Text, nullable=True)
    difficulty = Column(String(20), nullable=False)
    bloom_level = Column(String(20), nullable=False)
    marks = Column(Integer, nullable=False)
    topic = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    job = relationship("GenerationJob", back_populates="questions")

    def __repr__(self):
        return f"<GeneratedQuestion(id={self.id}, job={self.job_id}, difficulty='{self.difficulty}')>"
