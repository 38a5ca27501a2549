from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from cms_draft_sync.config import SyncSettings
from cms_draft_sync.errors import (
    AuthError,
    ConflictError,
    ContentSyncError,
    InvalidItemKeyError,
    NetworkError,
    NotFoundError,
    ValidationFailedError,
)
from cms_draft_sync.logging_config import set_trace_id, setup_logging
from cms_draft_sync.models.commit import CommitRecord
from cms_draft_sync.models.content import ContentItem, ContentKind
from cms_draft_sync.models.results import DocumentChanges, PageInfo, PublishResult, PublishStatus, SaveResult, SaveStatus
from cms_draft_sync.models.validation import ValidationError
from cms_draft_sync.service import ContentService, build_service

logger = logging.getLogger(__name__)


class ContentResponse(BaseModel):
    key: str
    dirty: bool
    document: dict[str, Any]

    @staticmethod
    def from_item(item: ContentItem, dirty: bool) -> "ContentResponse":
        return ContentResponse(key=str(item.key), dirty=dirty, document=item.to_document())


class ShaResponse(BaseModel):
    sha: str | None


class DraftListResponse(BaseModel):
    items: list[str]


class ValidationSummaryResponse(BaseModel):
    is_valid: bool
    errors: list[ValidationError] = Field(default_factory=list)
    errors_by_component: dict[str, dict[str, str]] = Field(default_factory=dict)


# Environment configuration
settings = SyncSettings.from_env()

# Setup logging
setup_logging(environment=settings.environment, project_id=settings.project_id)

_service: ContentService | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    if _service is not None:
        await _service.aclose()


app = FastAPI(title="CMS Draft Sync API", version="0.1.0", lifespan=lifespan)


def get_service() -> ContentService:
    """Build the service on first use so importing the app needs no credentials."""
    global _service
    if _service is None:
        _service = build_service(settings)
    return _service


@app.middleware("http")
async def trace_requests(request: Request, call_next):
    header = request.headers.get("x-cloud-trace-context", "")
    set_trace_id(header.split("/")[0] or uuid.uuid4().hex)
    try:
        return await call_next(request)
    finally:
        set_trace_id(None)


_STATUS_BY_ERROR: list[tuple[type[ContentSyncError], int]] = [
    (ValidationFailedError, 422),
    (InvalidItemKeyError, 422),
    (AuthError, 401),
    (NotFoundError, 404),
    (ConflictError, 409),
    (NetworkError, 502),
]


@app.exception_handler(ContentSyncError)
async def content_sync_error_handler(request: Request, exc: ContentSyncError) -> JSONResponse:
    status_code = 500
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            status_code = code
            break

    body: dict[str, Any] = {"detail": str(exc), "error_type": type(exc).__name__}
    if isinstance(exc, ValidationFailedError):
        body["errors"] = [error.model_dump(mode="json") for error in exc.errors]
    if status_code >= 500:
        logger.error("Request failed", extra={"path": request.url.path, "error": str(exc)})
    return JSONResponse(status_code=status_code, content=body)


@app.exception_handler(PydanticValidationError)
async def malformed_document_handler(request: Request, exc: PydanticValidationError) -> JSONResponse:
    errors = exc.errors(include_url=False, include_input=False, include_context=False)
    return JSONResponse(status_code=422, content={"detail": "Malformed content document", "errors": errors})


def _save_response(result: SaveResult) -> SaveResult:
    if result.status == SaveStatus.invalid:
        raise ValidationFailedError(result.errors)
    if result.status == SaveStatus.failed:
        raise HTTPException(status_code=502, detail=result.message)
    return result


@app.get("/v1/pages", response_model=list[PageInfo])
async def list_pages(service: ContentService = Depends(get_service)) -> list[PageInfo]:
    return await service.list_pages()


@app.get("/v1/pages/{page_id}", response_model=ContentResponse)
async def get_page(page_id: str, service: ContentService = Depends(get_service)) -> ContentResponse:
    item = await service.load_page(page_id)
    return ContentResponse.from_item(item, service.is_dirty(item.key))


@app.put("/v1/pages/{page_id}", response_model=SaveResult)
async def save_page(
    page_id: str,
    document: dict[str, Any],
    service: ContentService = Depends(get_service),
) -> SaveResult:
    return _save_response(await service.save_page(page_id, document))


@app.get("/v1/pages/{page_id}/changes", response_model=DocumentChanges)
async def get_page_changes(page_id: str, service: ContentService = Depends(get_service)) -> DocumentChanges:
    return await service.get_changes(page_id)


@app.get("/v1/pages/{page_id}/history", response_model=list[CommitRecord])
async def get_page_history(
    page_id: str,
    page: int = 1,
    per_page: int = 20,
    service: ContentService = Depends(get_service),
) -> list[CommitRecord]:
    return await service.get_history(page_id, page=page, per_page=per_page)


@app.get("/v1/globals", response_model=ContentResponse)
async def get_globals(service: ContentService = Depends(get_service)) -> ContentResponse:
    item = await service.load_globals()
    return ContentResponse.from_item(item, service.is_dirty(item.key))


@app.put("/v1/globals", response_model=SaveResult)
async def save_globals(document: dict[str, Any], service: ContentService = Depends(get_service)) -> SaveResult:
    return _save_response(await service.save_globals(document))


@app.get("/v1/sha", response_model=ShaResponse)
async def get_latest_sha(service: ContentService = Depends(get_service)) -> ShaResponse:
    return ShaResponse(sha=await service.get_latest_sha())


@app.post("/v1/freshness", response_model=ShaResponse)
async def check_freshness(service: ContentService = Depends(get_service)) -> ShaResponse:
    return ShaResponse(sha=await service.check_freshness())


@app.get("/v1/drafts", response_model=DraftListResponse)
async def list_drafts(service: ContentService = Depends(get_service)) -> DraftListResponse:
    return DraftListResponse(items=service.list_dirty())


@app.get("/v1/drafts/validation", response_model=ValidationSummaryResponse)
async def validate_drafts(service: ContentService = Depends(get_service)) -> ValidationSummaryResponse:
    result = service.validation_summary()
    return ValidationSummaryResponse(
        is_valid=result.is_valid,
        errors=result.error_list,
        errors_by_component=result.errors_by_component,
    )


@app.delete("/v1/drafts/{kind}/{item_id}", status_code=204)
async def discard_draft(kind: ContentKind, item_id: str, service: ContentService = Depends(get_service)) -> Response:
    if not service.discard(kind, item_id):
        raise HTTPException(status_code=404, detail="Draft not found")
    return Response(status_code=204)


@app.post("/v1/publish", response_model=PublishResult)
async def publish(service: ContentService = Depends(get_service)) -> PublishResult:
    result = await service.publish()
    if result.status == PublishStatus.blocked:
        raise ValidationFailedError(result.errors)
    return result


@app.get("/health")
async def healthcheck() -> JSONResponse:
    return JSONResponse({"status": "ok"})
