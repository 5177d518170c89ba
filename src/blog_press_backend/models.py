from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class PostInput(BaseModel):
    title: str = Field(..., min_length=1)
    excerpt: Optional[str] = None
    content: Optional[str] = None
    featured_image: Optional[str] = None
    author: Optional[str] = None
    category: Optional[str] = None
    tags: Optional[str] = None
    featured: bool = False
    published: bool = True


class Post(PostInput):
    id: int
    slug: str
    created_at: datetime
    updated_at: datetime


class PostCreated(BaseModel):
    id: int
    slug: str


class StatusResponse(BaseModel):
    success: bool
    slug: Optional[str] = None


class LoginRequest(BaseModel):
    username: str
    password: str


class AuthStatus(BaseModel):
    authenticated: bool


class UploadResponse(BaseModel):
    url: str
    filename: str
    originalName: str
    size: int
    dimensions: str
    message: str = "Image uploaded and optimized successfully"


class UploadLimits(BaseModel):
    max_upload_bytes: int
    max_width: int
    max_height: int
    output_format: str
    output_quality: int
    output_effort: int
