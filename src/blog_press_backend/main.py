from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional

from fastapi import Cookie, Depends, FastAPI, File, HTTPException, Query, Response, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.requests import Request

from .auth import AuthManager, SessionRecord
from .configuration import build_upload_limits, get_config
from .database import BlogDatabase
from .exceptions import DuplicateSlugError, IngestionError, NotAnImage, PayloadTooLarge
from .ingestion import ImageIngestor, UploadRequest
from .models import (
    AuthStatus,
    LoginRequest,
    Post,
    PostCreated,
    PostInput,
    StatusResponse,
    UploadLimits,
    UploadResponse,
)
from .storage import LocalImageStorage, build_storage

config = get_config()

logging.basicConfig(
    level=str(config.logging.level).upper(),
    format="%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

GENERIC_UPLOAD_ERROR = "Failed to process image. Please try a different image."
SESSION_COOKIE = config.auth.cookie_name

app = FastAPI(title="Blog Press API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(config.cors.allowed_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

database = BlogDatabase(Path(config.database.path))
auth_manager = AuthManager(config.database.path, session_ttl_hours=config.auth.session_ttl_hours)
auth_manager.ensure_user(config.auth.admin_username, config.auth.admin_password)
storage = build_storage(config)
ingestor = ImageIngestor(storage)

if isinstance(storage, LocalImageStorage):
    app.mount(storage.url_prefix, StaticFiles(directory=storage.root), name="uploads")


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
    )
    return JSONResponse(status_code=422, content={"error": problems or "Invalid request"})


def get_database() -> BlogDatabase:
    return database


def get_auth_manager() -> AuthManager:
    return auth_manager


def get_ingestor() -> ImageIngestor:
    return ingestor


def require_admin(
    session: Optional[str] = Cookie(None, alias=SESSION_COOKIE),
    manager: AuthManager = Depends(get_auth_manager),
) -> SessionRecord:
    record = manager.validate_session(session)
    if record is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    return record


@app.get("/healthz")
def healthcheck() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/config/limits", response_model=UploadLimits)
def get_upload_limits() -> UploadLimits:
    return build_upload_limits()


# Public read API


@app.get("/api/posts", response_model=List[Post])
def list_posts(
    search: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    featured: Optional[str] = Query(None),
    db: BlogDatabase = Depends(get_database),
) -> List[Post]:
    rows = db.list_published(search=search, category=category, featured_only=featured == "true")
    return [Post(**row) for row in rows]


@app.get("/api/posts/featured", response_model=List[Post])
def list_featured_posts(db: BlogDatabase = Depends(get_database)) -> List[Post]:
    return [Post(**row) for row in db.list_featured()]


@app.get("/api/posts/{slug}", response_model=Post)
def get_post_by_slug(slug: str, db: BlogDatabase = Depends(get_database)) -> Post:
    row = db.get_published_by_slug(slug)
    if not row:
        raise HTTPException(status_code=404, detail="Post not found")
    return Post(**row)


@app.get("/api/categories", response_model=List[str])
def list_categories(db: BlogDatabase = Depends(get_database)) -> List[str]:
    return db.list_categories()


# Session handling


@app.post("/api/admin/login", response_model=StatusResponse)
def login(
    credentials: LoginRequest,
    response: Response,
    manager: AuthManager = Depends(get_auth_manager),
) -> StatusResponse:
    user_id = manager.authenticate(credentials.username, credentials.password)
    if user_id is None:
        logger.warning(f"Failed login attempt for {credentials.username!r}")
        raise HTTPException(status_code=401, detail="Invalid credentials")

    token = manager.create_session(user_id)
    response.set_cookie(
        SESSION_COOKIE,
        token,
        httponly=True,
        samesite="lax",
        secure=bool(config.auth.cookie_secure),
        max_age=int(manager.session_ttl.total_seconds()),
    )
    return StatusResponse(success=True)


@app.post("/api/admin/logout", response_model=StatusResponse)
def logout(
    response: Response,
    session: Optional[str] = Cookie(None, alias=SESSION_COOKIE),
    manager: AuthManager = Depends(get_auth_manager),
) -> StatusResponse:
    manager.revoke_session(session)
    response.delete_cookie(SESSION_COOKIE)
    return StatusResponse(success=True)


@app.get("/api/admin/check", response_model=AuthStatus)
def check_auth(
    session: Optional[str] = Cookie(None, alias=SESSION_COOKIE),
    manager: AuthManager = Depends(get_auth_manager),
) -> AuthStatus:
    return AuthStatus(authenticated=manager.validate_session(session) is not None)


# Admin post API


@app.get("/api/admin/posts", response_model=List[Post])
def admin_list_posts(
    _: SessionRecord = Depends(require_admin),
    db: BlogDatabase = Depends(get_database),
) -> List[Post]:
    return [Post(**row) for row in db.list_all()]


@app.get("/api/admin/posts/{post_id}", response_model=Post)
def admin_get_post(
    post_id: int,
    _: SessionRecord = Depends(require_admin),
    db: BlogDatabase = Depends(get_database),
) -> Post:
    row = db.get_post(post_id)
    if not row:
        raise HTTPException(status_code=404, detail="Post not found")
    return Post(**row)


@app.post("/api/admin/posts", response_model=PostCreated)
def admin_create_post(
    post: PostInput,
    _: SessionRecord = Depends(require_admin),
    db: BlogDatabase = Depends(get_database),
) -> PostCreated:
    try:
        post_id, slug = db.create_post(post.model_dump())
    except DuplicateSlugError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return PostCreated(id=post_id, slug=slug)


@app.put("/api/admin/posts/{post_id}", response_model=StatusResponse)
def admin_update_post(
    post_id: int,
    post: PostInput,
    _: SessionRecord = Depends(require_admin),
    db: BlogDatabase = Depends(get_database),
) -> StatusResponse:
    try:
        slug = db.update_post(post_id, post.model_dump())
    except DuplicateSlugError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    if slug is None:
        raise HTTPException(status_code=404, detail="Post not found")
    return StatusResponse(success=True, slug=slug)


@app.delete("/api/admin/posts/{post_id}", response_model=StatusResponse)
def admin_delete_post(
    post_id: int,
    _: SessionRecord = Depends(require_admin),
    db: BlogDatabase = Depends(get_database),
) -> StatusResponse:
    db.delete_post(post_id)
    return StatusResponse(success=True)


# Image upload


@app.post("/api/admin/upload", response_model=UploadResponse)
def upload_image(
    image: Optional[UploadFile] = File(None),
    _: SessionRecord = Depends(require_admin),
    image_ingestor: ImageIngestor = Depends(get_ingestor),
) -> UploadResponse:
    if image is None:
        raise HTTPException(status_code=400, detail="No file uploaded")

    # Reading one byte past the limit is enough to detect oversized uploads
    raw_bytes = image.file.read(image_ingestor.max_upload_bytes + 1)
    original_name = image.filename or "image"
    request = UploadRequest(
        raw_bytes=raw_bytes,
        original_filename=original_name,
        declared_media_type=image.content_type or "",
    )

    try:
        result = image_ingestor.ingest(request)
    except (NotAnImage, PayloadTooLarge) as exc:
        logger.warning(f"Upload rejected ({exc.kind}): {original_name}: {exc.message}")
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc
    except IngestionError as exc:
        if exc.status_code >= 500:
            logger.exception(f"Upload failed ({exc.kind}): {original_name}")
        else:
            logger.warning(f"Upload failed ({exc.kind}): {original_name}: {exc.message}")
        raise HTTPException(status_code=exc.status_code, detail=GENERIC_UPLOAD_ERROR) from exc
    finally:
        image.file.close()

    return UploadResponse(
        url=image_ingestor.storage.url_for(result.stored_filename),
        filename=result.stored_filename,
        originalName=result.original_filename,
        size=result.byte_size,
        dimensions=result.dimensions,
    )
