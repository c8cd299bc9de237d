from __future__ import annotations

from typing import Any, Dict

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from .ai.model_handle import ModelHandle
from .database import get_database, settings
from .errors import (
    DatasetError,
    DonorUnavailableError,
    FeatureSchemaMismatchError,
    InvalidTransitionError,
    MatchNotFoundError,
    MatchPersistenceError,
    ModelLoadError,
    ModelNotTrainedError,
    NotificationError,
    OrganLinkError,
    PatientNotFoundError,
    StoreError,
    TrainingError,
    TrainingInProgressError,
)
from .matching.engine import MatchingEngine
from .routers import matching, training
from .schemas.match import match_document
from .store.mongo import MongoRecordStore
from .utils.logging import configure_logging

ERROR_STATUS = [
    ((PatientNotFoundError, MatchNotFoundError), status.HTTP_404_NOT_FOUND),
    ((InvalidTransitionError, DonorUnavailableError, TrainingInProgressError), status.HTTP_409_CONFLICT),
    ((FeatureSchemaMismatchError,), status.HTTP_422_UNPROCESSABLE_ENTITY),
    ((DatasetError, TrainingError), status.HTTP_400_BAD_REQUEST),
    ((ModelNotTrainedError, ModelLoadError, StoreError, MatchPersistenceError, NotificationError), status.HTTP_503_SERVICE_UNAVAILABLE),
]


def status_for(exc: OrganLinkError) -> int:
    for error_types, code in ERROR_STATUS:
        if isinstance(exc, error_types):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def organlink_error_handler(request: Request, exc: OrganLinkError) -> JSONResponse:
    code = status_for(exc)
    body: Dict[str, Any] = {"detail": str(exc), "error": type(exc).__name__}
    if isinstance(exc, NotificationError):
        body["matches"] = [match_document(match) for match in exc.matches]
    if code >= 500:
        logger.error("{} {} failed: {}", request.method, request.url.path, exc)
    else:
        logger.warning("{} {} rejected: {}", request.method, request.url.path, exc)
    return JSONResponse(body, status_code=code)


def build_engine() -> MatchingEngine:
    store = MongoRecordStore(get_database(settings))
    return MatchingEngine(store, ModelHandle(settings.model_path), settings)


def create_app(engine: MatchingEngine | None = None) -> FastAPI:
    app = FastAPI(title="OrganLink Matching API", version="1.0.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(OrganLinkError, organlink_error_handler)

    if engine is not None:
        matching.init_router(engine)

    app.include_router(matching.router)
    app.include_router(training.router)

    @app.on_event("startup")
    async def wire_engine() -> None:
        configure_logging(settings.log_level)
        if engine is None:
            matching.init_router(build_engine())
            logger.info("Matching engine ready (threshold {})", settings.matching_threshold)

    @app.get("/health")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()


def run() -> None:
    uvicorn.run("organlink.main:app", host=settings.api_host, port=settings.api_port)


if __name__ == "__main__":
    run()
