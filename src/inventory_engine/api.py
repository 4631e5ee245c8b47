"""FastAPI router configuration."""
from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Sequence

from fastapi import APIRouter, Depends, FastAPI, File, Query, Request, Response, UploadFile, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from . import crud, ledger, schemas
from .config import Settings, get_settings
from .database import engine, get_session
from .errors import (
    AllocationConflict,
    ImportFormatError,
    InsufficientInventory,
    InvalidDeallocation,
    InventoryError,
    ItemNotFound,
    MissingIdentifier,
    PersistenceFailure,
    RowValidationFailure,
    UploadTooLarge,
)
from .formats import XLS_CONTENT_TYPE
from .importer import ImportResult, import_upload
from .logger import configure_logging
from .management import init_database
from .stats import collect_stats
from .templates import build_import_template, template_filename
from .validation import STANDARD_PROFILE

logger = logging.getLogger(__name__)

router = APIRouter()

_UPLOAD_READ_SIZE = 1024 * 1024

_STATUS_BY_ERROR: dict[type[InventoryError], int] = {
    UploadTooLarge: status.HTTP_413_CONTENT_TOO_LARGE,
    ImportFormatError: status.HTTP_400_BAD_REQUEST,
    RowValidationFailure: status.HTTP_400_BAD_REQUEST,
    MissingIdentifier: status.HTTP_400_BAD_REQUEST,
    ItemNotFound: status.HTTP_404_NOT_FOUND,
    InsufficientInventory: status.HTTP_400_BAD_REQUEST,
    InvalidDeallocation: status.HTTP_400_BAD_REQUEST,
    AllocationConflict: status.HTTP_409_CONFLICT,
    PersistenceFailure: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def provide_settings() -> Settings:
    """Dependency returning the active :class:`Settings` instance."""

    return get_settings()


def _status_for(exc: InventoryError) -> int:
    for klass in type(exc).__mro__:
        if klass in _STATUS_BY_ERROR:
            return _STATUS_BY_ERROR[klass]
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _error_response(status_code: int, error: str, details: object = None) -> JSONResponse:
    content: dict[str, object] = {"error": error}
    if details is not None:
        content["details"] = jsonable_encoder(details)
    return JSONResponse(status_code=status_code, content=content)


async def inventory_error_handler(request: Request, exc: InventoryError) -> JSONResponse:
    status_code = _status_for(exc)
    if status_code >= 500:
        logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.details)
    return _error_response(status_code, exc.message, exc.details)


async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    return _error_response(status.HTTP_400_BAD_REQUEST, str(exc))


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error_response(status.HTTP_400_BAD_REQUEST, "Invalid request", exc.errors())


async def _read_upload(upload: UploadFile, limit: int) -> bytes:
    if upload.size is not None and upload.size > limit:
        raise UploadTooLarge("File too large", details={"maxBytes": limit})
    buffer = bytearray()
    while True:
        block = await upload.read(_UPLOAD_READ_SIZE)
        if not block:
            break
        buffer.extend(block)
        if len(buffer) > limit:
            raise UploadTooLarge("File too large", details={"maxBytes": limit})
    return bytes(buffer)


def _import_response(result: ImportResult) -> schemas.ImportResponse:
    if result.cancelled:
        message = f"Import cancelled after {result.count} items"
    else:
        message = f"Successfully imported {result.count} items"
    return schemas.ImportResponse(
        message=message,
        count=result.count,
        total_processed=result.total_processed,
        succeeded=result.succeeded,
        failed=result.failed,
        dropped=result.dropped,
        invalid=result.invalid,
        items=[schemas.InventoryItemOut.model_validate(item) for item in result.items],
        validation_errors=result.violations,
        errors=[schemas.ChunkFailureOut.model_validate(failure) for failure in result.errors],
        cancelled=result.cancelled,
    )


@router.get("/health", response_model=schemas.HealthStatus, tags=["system"])
async def health_check(settings: Settings = Depends(provide_settings)) -> schemas.HealthStatus:
    return schemas.HealthStatus(environment=settings.environment)


@router.post(
    "/bulk-import",
    response_model=schemas.ImportResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["import"],
)
async def bulk_import(
    request: Request,
    file: UploadFile = File(...),
    profile: str = Query(STANDARD_PROFILE),
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(provide_settings),
) -> schemas.ImportResponse:
    content = await _read_upload(file, settings.max_upload_bytes)
    result = await import_upload(
        session,
        content,
        content_type=file.content_type,
        filename=file.filename,
        settings=settings,
        profile=profile,
        should_stop=request.is_disconnected,
    )
    return _import_response(result)


@router.get("/bulk-import/template", tags=["import"])
async def download_template(profile: str = Query(STANDARD_PROFILE)) -> Response:
    content = build_import_template(profile)
    filename = template_filename(profile)
    return Response(
        content=content,
        media_type=XLS_CONTENT_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/stats", response_model=schemas.StatsOut, tags=["inventory"])
async def inventory_stats(
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(provide_settings),
) -> schemas.StatsOut:
    stats = await collect_stats(session, settings)
    return schemas.StatsOut.model_validate(stats)


@router.get("/items", response_model=list[schemas.InventoryItemOut], tags=["inventory"])
async def list_items(
    session: AsyncSession = Depends(get_session),
) -> Sequence[schemas.InventoryItemOut]:
    items = await crud.list_items(session)
    return [schemas.InventoryItemOut.model_validate(item) for item in items]


@router.get("/items/{item_id}", response_model=schemas.InventoryItemOut, tags=["inventory"])
async def get_item(
    item_id: str, session: AsyncSession = Depends(get_session)
) -> schemas.InventoryItemOut:
    item = await crud.get_item(session, item_id)
    return schemas.InventoryItemOut.model_validate(item)


@router.get(
    "/items/{item_id}/history",
    response_model=list[schemas.LedgerEntryOut],
    tags=["inventory"],
)
async def item_history(
    item_id: str, session: AsyncSession = Depends(get_session)
) -> Sequence[schemas.LedgerEntryOut]:
    entries = await ledger.item_history(session, item_id)
    return [schemas.LedgerEntryOut.model_validate(entry) for entry in entries]


@router.post("/allocate", response_model=schemas.AllocationEventOut, tags=["allocation"])
async def allocate(
    payload: schemas.AllocationRequest,
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(provide_settings),
) -> schemas.AllocationEventOut:
    event = await ledger.allocate(
        session,
        item_id=payload.item_id,
        quantity=payload.quantity,
        consumer_id=payload.production_line_id,
        settings=settings,
    )
    return schemas.AllocationEventOut.model_validate(event)


@router.post("/deallocate", response_model=schemas.AllocationEventOut, tags=["allocation"])
async def deallocate(
    payload: schemas.AllocationRequest,
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(provide_settings),
) -> schemas.AllocationEventOut:
    event = await ledger.deallocate(
        session,
        item_id=payload.item_id,
        quantity=payload.quantity,
        consumer_id=payload.production_line_id,
        settings=settings,
    )
    return schemas.AllocationEventOut.model_validate(event)


@router.post(
    "/items/{item_id}/update-quantity",
    response_model=schemas.InventoryItemOut,
    tags=["inventory"],
)
async def update_quantity(
    item_id: str,
    payload: schemas.UpdateQuantityRequest,
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(provide_settings),
) -> schemas.InventoryItemOut:
    item = await ledger.update_quantity(
        session,
        item_id=item_id,
        new_quantity=payload.quantity,
        reason=payload.reason,
        note=payload.note,
        settings=settings,
    )
    return schemas.InventoryItemOut.model_validate(item)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    await init_database()
    yield
    await engine.dispose()


def create_app(settings: Settings | None = None) -> FastAPI:
    active = settings or get_settings()
    configure_logging(active)
    app = FastAPI(title=active.app_name, lifespan=lifespan)
    if settings is not None:
        app.dependency_overrides[provide_settings] = lambda: settings
    app.add_exception_handler(InventoryError, inventory_error_handler)
    app.add_exception_handler(ValueError, value_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.include_router(router)
    return app


app = create_app()


__all__ = ["app", "create_app", "provide_settings"]
