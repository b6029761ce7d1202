# app/main.py
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from concurrent.futures import ThreadPoolExecutor
import threading
import logging
import os

from app.config.settings import settings
from app.delivery.api.editor import router
from app.domain.export_service import ExportService
from app.domain.renderer import SceneRenderer

logging.getLogger("PIL").setLevel(logging.WARNING)
logger = logging.getLogger("uvicorn.error")

# --- Lazy service bootstrap state ---
_service_lock = threading.Lock()
_service_ready = False


def _ensure_service(app: FastAPI) -> None:
    global _service_ready
    with _service_lock:
        if _service_ready:
            return
        logger.info("Initializing SceneRenderer and ExportService (lazy-init)...")
        renderer = SceneRenderer()
        app.state.renderer = renderer
        app.state.export_service = ExportService(cpu_executor=app.state.executor, renderer=renderer)
        _service_ready = True
        logger.info("Service initialization done.")


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _service_ready
    max_workers = settings.MAX_WORKERS or min(4, os.cpu_count() or 1)
    app.state.executor = ThreadPoolExecutor(max_workers=max_workers)
    logger.info(f"Service '{settings.PROJECT_NAME}' started (mode: {settings.ENVIRONMENT}).")
    logger.info(f"Shared ThreadPoolExecutor created with {max_workers} workers.")
    yield
    logger.info("Shutting down ThreadPoolExecutor...")
    app.state.executor.shutdown(wait=True)
    with _service_lock:
        _service_ready = False
    logger.info("Service stopped.")


app = FastAPI(
    title="Frame Studio Rendering Service",
    description="Template frame editing engine: preview rendering and final export of framed templates",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_HOSTS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Lazy-load only for API routes
@app.middleware("http")
async def lazy_boot(request: Request, call_next):
    if request.url.path.startswith(settings.API_V1_STR):
        _ensure_service(request.app)
    return await call_next(request)


app.include_router(router, prefix=settings.API_V1_STR)


@app.get("/")
async def root():
    return {"message": f"{settings.PROJECT_NAME} Rendering Service", "version": "1.0.0", "status": "ok"}


@app.get("/health")
async def health_check():
    return {"status": "ok", "service": settings.PROJECT_NAME, "renderer_loaded": _service_ready}
