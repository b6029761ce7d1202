# app/delivery/api/editor.py
import asyncio
import io
import logging
import secrets
import threading
import traceback

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import Response
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from app.config.settings import settings
from app.delivery.schemas.body import ExportRequest, RenderRequest
from app.domain.errors import ExportError
from app.infrastructure import loader

router = APIRouter()
security = HTTPBasic()
logger = logging.getLogger("uvicorn.error")


def verify_basic_auth(creds: HTTPBasicCredentials = Depends(security)) -> None:
    ok_user = secrets.compare_digest(creds.username, settings.BASIC_AUTH_USERNAME)
    ok_pass = secrets.compare_digest(creds.password, settings.BASIC_AUTH_PASSWORD)
    if not (ok_user and ok_pass):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Basic"},
        )


def _service(request: Request, name: str):
    svc = getattr(request.app.state, name, None)
    if svc is None:
        logger.error(f"{name} not initialized")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service is not ready. Please try again in a moment.",
        )
    return svc


@router.post("/render", dependencies=[Depends(verify_basic_auth)])
async def render(request: Request, body: RenderRequest):
    """Editor preview as PNG. A broken background falls back to the placeholder fill."""
    renderer = _service(request, "renderer")
    background, error = await loader.load_background(body.template.background)

    loop = asyncio.get_running_loop()
    image = await loop.run_in_executor(
        request.app.state.executor,
        renderer.render_scene,
        background,
        body.template.frames,
        body.selection_id,
        body.guide_lines,
        body.scale,
        body.options,
    )
    buf = io.BytesIO()
    image.save(buf, format="PNG")
    headers = {"X-Background-Error": error} if error else {}
    return Response(content=buf.getvalue(), media_type="image/png", headers=headers)


@router.post("/export", dependencies=[Depends(verify_basic_auth)])
async def export(request: Request, body: ExportRequest):
    request_id = body.id
    logger.info(f"=== ENDPOINT START for {request_id} (threads={threading.active_count()}) ===")

    try:
        service = _service(request, "export_service")

        if await request.is_disconnected():
            logger.warning(f"[{request_id}] Client already disconnected")
            raise HTTPException(status_code=499, detail="Client closed request")

        try:
            result = await asyncio.wait_for(service.export(body), timeout=settings.EXPORT_TIMEOUT_SECONDS)
        except asyncio.TimeoutError:
            logger.error(f"=== ENDPOINT TIMEOUT for {request_id} after {settings.EXPORT_TIMEOUT_SECONDS}s ===")
            raise HTTPException(status_code=status.HTTP_504_GATEWAY_TIMEOUT, detail="Export timed out")

        logger.info(f"=== ENDPOINT SUCCESS for {request_id} ===")
        return Response(
            content=result.content,
            media_type=result.media_type,
            headers={"Content-Disposition": f'attachment; filename="{result.filename}"'},
        )

    except HTTPException:
        raise
    except ExportError as e:
        logger.error(f"=== EXPORT FAILED for {request_id}: {e} ===")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Export failed: {e}")
    except Exception as e:
        logger.error(f"=== ENDPOINT ERROR for {request_id}: {e} ===\n{traceback.format_exc()}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error.",
        )
