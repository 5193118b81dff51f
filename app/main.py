"""Late Arrival Tracker - FastAPI entrypoint."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import ServerSelectionTimeoutError

from app.config import settings
from app.db import db_shutdown, db_startup
from app.api import analytics, late_records, reference, stats

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        await db_startup()
    except ServerSelectionTimeoutError as e:
        logger.error(
            "MongoDB is not reachable at %s. Check MONGODB_URL or start a local instance.",
            settings.mongodb_url,
        )
        raise RuntimeError(
            "MongoDB connection failed. Set MONGODB_URL or start MongoDB (e.g. docker run -p 27017:27017 mongo)."
        ) from e
    yield
    await db_shutdown()


app = FastAPI(
    title=settings.app_name,
    description="Late arrival tracking: records, filters, exports and analytics over MongoDB",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = jsonable_encoder(exc.errors())
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": errors},
    )

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.cors_origins.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# API routes
app.include_router(reference.router, prefix="/api", tags=["Reference data"])
app.include_router(late_records.router, prefix="/api/late-records", tags=["Late records"])
app.include_router(stats.router, prefix="/api/stats", tags=["Stats"])
app.include_router(analytics.router, prefix="/api/analytics", tags=["Analytics"])


@app.get("/health")
def health():
    return {"status": "ok", "app": settings.app_name}
