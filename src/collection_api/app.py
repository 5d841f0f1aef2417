from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import APIRouter, Depends, FastAPI, Path, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from collection_runtime import (
    CollectionJobManager,
    ForbiddenError,
    TrackerConfig,
    TrackerError,
    ValidationError,
    build_tracker,
    load_env,
)
from collection_runtime.dispatch import simulated_workers
from collection_runtime.logging import generate_request_id, get_logger

from .auth import AuthAdapter, AuthResult, build_auth_adapter
from .schemas import (
    ID_REGEX,
    CancelResponse,
    ErrorResponse,
    ResultsResponse,
    StatusResponse,
    TriggerRequest,
    TriggerResponse,
)
from .settings import Settings, get_settings


class AuthRejected(Exception):
    def __init__(self, result: AuthResult) -> None:
        super().__init__(result.reason or "unauthorized")
        self.result = result


async def require_caller(request: Request) -> AuthResult:
    adapter: AuthAdapter = request.app.state.auth
    result = await adapter.authenticate(request=request)
    if not result.ok or not result.caller_id:
        get_logger().warning(
            "Rejected request",
            path=request.url.path,
            reason=result.reason,
            status_code=result.status_code,
        )
        raise AuthRejected(result)
    get_logger().set_context(request_id=generate_request_id(), caller_id=result.caller_id)
    return result


def _tracker(request: Request) -> CollectionJobManager:
    return request.app.state.tracker


CollectionId = Annotated[str, Path(pattern=ID_REGEX, description="Collection identifier")]

_ERROR_RESPONSES = {status: {"model": ErrorResponse} for status in (400, 401, 403, 404)}

router = APIRouter(
    prefix="/v1/data-collection",
    tags=["data-collection"],
    responses=_ERROR_RESPONSES,
)


@router.post("/trigger", status_code=202, response_model=TriggerResponse)
async def trigger_collection(
    body: TriggerRequest,
    request: Request,
    caller: AuthResult = Depends(require_caller),
) -> TriggerResponse:
    tracker = _tracker(request)
    # Callers trigger for themselves; admins may trigger on behalf of a user.
    if body.user_id != caller.caller_id and not tracker.guard.is_admin(caller.role):
        raise ForbiddenError()

    receipt = await tracker.trigger(body.user_id, body.collection_type, body.services)
    return TriggerResponse(
        collection_id=receipt.job_id,
        status=receipt.state.value,
        estimated_duration=receipt.estimated_duration,
    )


@router.get("/{collection_id}/status", response_model=StatusResponse)
async def collection_status(
    request: Request,
    collection_id: CollectionId,
    caller: AuthResult = Depends(require_caller),
) -> StatusResponse:
    view = await _tracker(request).status(collection_id, caller.caller_id, caller.role)
    return StatusResponse(
        collection_id=view.job_id,
        status=view.state.value,
        progress=view.progress_percent,
        records_processed=view.records_processed,
        started_at=view.created_at,
        updated_at=view.updated_at,
    )


@router.get("/{collection_id}/results", response_model=ResultsResponse)
async def collection_results(
    request: Request,
    collection_id: CollectionId,
    caller: AuthResult = Depends(require_caller),
) -> ResultsResponse:
    view = await _tracker(request).results(collection_id, caller.caller_id, caller.role)
    return ResultsResponse(
        collection_id=view.job_id,
        total_records=view.total_records,
        services_processed=list(view.services_processed),
        completed_at=view.completed_at,
    )


@router.post("/{collection_id}/cancel", response_model=CancelResponse)
async def cancel_collection(
    request: Request,
    collection_id: CollectionId,
    caller: AuthResult = Depends(require_caller),
) -> CancelResponse:
    ack = await _tracker(request).cancel(collection_id, caller.caller_id, caller.role)
    return CancelResponse(collection_id=ack.job_id, status=ack.state.value)


def _error_body(error: str, code: str, details: list | None = None) -> dict:
    body: dict = {"error": error, "code": code}
    if details is not None:
        body["details"] = details
    return body


async def _on_auth_rejected(request: Request, exc: AuthRejected) -> JSONResponse:
    result = exc.result
    return JSONResponse(
        status_code=result.status_code,
        content=_error_body(result.reason or "unauthorized", result.code or "UNAUTHORIZED"),
    )


async def _on_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content=_error_body("validation", "VALIDATION_ERROR", jsonable_encoder(exc.errors())),
    )


async def _on_tracker_error(request: Request, exc: TrackerError) -> JSONResponse:
    if isinstance(exc, ValidationError):
        details = [{"field": exc.field_name, "msg": exc.message}]
        return JSONResponse(
            status_code=exc.http_status,
            content=_error_body("validation", exc.code.name, details),
        )
    if exc.http_status >= 500:
        get_logger().log_error(exc, "Unhandled tracker error", path=request.url.path)
    return JSONResponse(
        status_code=exc.http_status,
        content=_error_body(exc.message, exc.code.name),
    )


def create_app(
    *,
    tracker: CollectionJobManager | None = None,
    auth: AuthAdapter | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    if settings is None:
        load_env()
        settings = get_settings()

    if tracker is None:
        config = TrackerConfig.from_env()
        tracker = build_tracker(
            config,
            workers=simulated_workers(
                config.known_services,
                records=settings.simulated_records,
                delay=settings.simulated_delay_ms / 1000,
            ),
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await app.state.tracker.shutdown()

    app = FastAPI(title="Collection Tracker", version="0.1.0", debug=settings.debug, lifespan=lifespan)
    app.state.tracker = tracker
    app.state.auth = auth or build_auth_adapter(settings)

    app.add_exception_handler(AuthRejected, _on_auth_rejected)
    app.add_exception_handler(RequestValidationError, _on_request_validation)
    app.add_exception_handler(TrackerError, _on_tracker_error)

    @app.get("/healthz")
    async def healthz() -> dict[str, str]:
        return {"ok": "true"}

    app.include_router(router)
    return app
