"""Pydantic schemas for the upload and listing endpoints."""
from pydantic import BaseModel, Field


class UploadResponse(BaseModel):
    """Response body for POST /upload."""
    url: str = Field(..., description="Absolute, publicly fetchable image URL")


class ErrorResponse(BaseModel):
    """Error body shared by every endpoint."""
    error: str = Field(..., description="Human-readable error message")
