"""
Blog Press Backend - REST API for a small blog

This package provides a FastAPI-based web service for a blog. It enables:

- Public read access to published posts, featured posts and categories
- Session-authenticated admin endpoints to create, edit and publish posts
- Image uploads normalized to size-capped WebP files

Key Components:
    - main: FastAPI application and HTTP endpoint definitions
    - ingestion: Image upload orchestration (validate, encode, persist)
    - imaging: Format probing, resize policy and WebP encoding
    - storage: Filename allocation and local/S3 image storage
    - database: SQLite persistence for posts
    - auth: Admin users and login sessions
    - models: Pydantic models for request/response validation
    - configuration: Config loading with environment overrides
    - utils: Filesystem and string utilities

Usage:
    Run the API server with:
        uvicorn blog_press_backend.main:app --reload --host 0.0.0.0 --port 3000
"""
