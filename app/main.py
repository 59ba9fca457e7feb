import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.v1.fees.router import router as fees_router
from app.api.v1.hostel.router import router as hostel_router
from app.api.v1.students.router import router as students_router
from app.api.v1.transport.router import router as transport_router
from app.core.config import settings
from app.core.logging import setup_logging
from app.db.session import init_models

logger = logging.getLogger("app")


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.auto_create_tables:
        await init_models()
        logger.info("Database tables created")
    yield


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def create_app() -> FastAPI:
    setup_logging()
    app = FastAPI(title="School Fee Ledger Backend", lifespan=lifespan)

    # CORS: allow frontend to call this API
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # Routers
    app.include_router(students_router)
    app.include_router(fees_router)
    app.include_router(hostel_router)
    app.include_router(transport_router)

    return app


app = create_app()
