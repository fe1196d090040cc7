"""
Pydantic schemas for request/response validation
Separate from SQLAlchemy models for clean API contracts
"""

from pydantic import BaseModel, Field, ConfigDict
from typing import Optional
from datetime import datetime


# ==========================================
# COURSE MATERIAL SCHEMAS
# ==========================================

class MaterialResponse(BaseModel):
    """Schema for CourseMaterial response"""
    id: int
    course_id: int
    title: str
    is_processed: bool
    document_title: Optional[str] = None
    total_pages: Optional[int] = None
    section_count: int = Field(0, description="Number of cached sections")
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_model(cls, material) -> "MaterialResponse":
        response = cls.model_validate(material)
        response.section_count = len(material.sections_data or [])
        return response
