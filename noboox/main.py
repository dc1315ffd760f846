from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from noboox.api.routes import research
from noboox.config import settings
from noboox.errors import InvalidRequest, RateLimitExceeded, ResearchError
from noboox.services.logger import logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"noboox starting (search provider: {settings.search_provider})")
    yield


app = FastAPI(
    title="Noboox",
    description="Cited research reports from web and academic search",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ResearchError)
async def research_error_handler(request: Request, exc: ResearchError):
    logger.warning(
        f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}: {exc.detail or exc}"
    )
    headers = None
    if isinstance(exc, RateLimitExceeded):
        headers = {"Retry-After": str(exc.retry_after_seconds)}
    return JSONResponse(status_code=exc.status_code, content=exc.to_response(), headers=headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    error = InvalidRequest(f"{len(exc.errors())} validation error(s)")
    logger.info(f"{request.method} {request.url.path} -> 400 invalid request: {exc.errors()}")
    return JSONResponse(status_code=error.status_code, content=error.to_response())


# Routes
app.include_router(research.router)


@app.get("/api/health")
async def health():
    return {"status": "ok", "service": "noboox"}
