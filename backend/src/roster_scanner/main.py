import asyncio
import base64
import logging
import os
import time

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .services.roster_config import env_float, env_int
from .services.roster_service import RosterImageService, create_roster_service
from .services.roster_types import (
    GridAnchorError,
    RosterDependencyError,
    RosterInputError,
    RosterScanError,
    TextDetection,
)
from .services.text_detection import detections_from_payload

app = FastAPI(title="Roster Scanner API")
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("roster.api")

APP_HOST = os.getenv("HOST", "0.0.0.0")
APP_PORT = env_int("PORT", 8000)
APP_VERSION = os.getenv("APP_VERSION", "dev")
ROSTER_MAX_UPLOAD_MB = env_float("ROSTER_MAX_UPLOAD_MB", 8.0)
ROSTER_MAX_UPLOAD_BYTES = max(1, int(ROSTER_MAX_UPLOAD_MB * 1024 * 1024))
ROSTER_TIMEOUT_SECONDS = max(1.0, env_float("ROSTER_TIMEOUT_SECONDS", 30.0))

_TRUE_VALUES = {"1", "true", "yes", "on"}

_service: RosterImageService | None = None


def get_service() -> RosterImageService:
    global _service
    if _service is None:
        _service = create_roster_service()
    return _service


def _error(
    *,
    status_code: int,
    code: str,
    message: str,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "ok": False,
            "error": {
                "code": code,
                "message": message,
            },
        },
    )


@app.middleware("http")
async def request_log_middleware(request: Request, call_next):
    started = time.perf_counter()
    method = request.method
    path = request.url.path
    try:
        response = await call_next(request)
    except Exception:
        elapsed_ms = (time.perf_counter() - started) * 1000.0
        logger.exception(
            "request failed method=%s path=%s duration_ms=%.2f",
            method,
            path,
            elapsed_ms,
        )
        raise

    elapsed_ms = (time.perf_counter() - started) * 1000.0
    logger.info(
        "request method=%s path=%s status=%s duration_ms=%.2f",
        method,
        path,
        response.status_code,
        elapsed_ms,
    )
    return response


@app.on_event("startup")
def _startup() -> None:
    logger.info(
        "startup config host=%s port=%s version=%s",
        APP_HOST,
        APP_PORT,
        APP_VERSION,
    )
    logger.info(
        "startup config roster_max_upload_mb=%.2f roster_timeout_seconds=%.2f",
        ROSTER_MAX_UPLOAD_MB,
        ROSTER_TIMEOUT_SECONDS,
    )
    service = get_service()
    logger.info("startup roster service ready cache_dir=%s", service.matcher.cache_dir)


@app.get("/health")
def health() -> dict[str, bool]:
    return {"ok": True}


async def _read_upload(image: object) -> bytes:
    if hasattr(image, "read"):
        return await image.read()  # type: ignore[union-attr]
    return bytes(image)  # type: ignore[arg-type]


@app.post("/api/roster/scan", response_model=None)
async def scan_roster(request: Request) -> object:
    content_type = (request.headers.get("content-type") or "").lower()
    if "multipart/form-data" not in content_type:
        return _error(
            status_code=400,
            code="INVALID_CONTENT_TYPE",
            message="multipart/form-data with 'image' field is required",
        )

    content_length_raw = (request.headers.get("content-length") or "").strip()
    if content_length_raw:
        try:
            if int(content_length_raw) > ROSTER_MAX_UPLOAD_BYTES:
                return _error(
                    status_code=413,
                    code="FILE_TOO_LARGE",
                    message=f"image payload exceeds {ROSTER_MAX_UPLOAD_MB:.2f} MB limit",
                )
        except ValueError:
            pass

    try:
        form = await request.form()
    except Exception:  # noqa: BLE001
        logger.exception("roster form parse failed")
        return _error(
            status_code=503,
            code="MULTIPART_UNAVAILABLE",
            message=(
                "multipart parser unavailable. Install dependency: "
                "pip install python-multipart"
            ),
        )

    image = form.get("image")
    if image is None:
        return _error(status_code=400, code="MISSING_IMAGE", message="image field is required")

    image_content_type = str(getattr(image, "content_type", "")).lower()
    if image_content_type and not image_content_type.startswith("image/"):
        return _error(status_code=400, code="INVALID_IMAGE_TYPE", message="image file is required")

    payload = await _read_upload(image)
    if not payload:
        return _error(status_code=400, code="EMPTY_IMAGE", message="empty image payload")
    if len(payload) > ROSTER_MAX_UPLOAD_BYTES:
        return _error(
            status_code=413,
            code="FILE_TOO_LARGE",
            message=f"image payload exceeds {ROSTER_MAX_UPLOAD_MB:.2f} MB limit",
        )

    debug_mode = str(form.get("debug") or "").strip().lower() in _TRUE_VALUES

    detections: list[TextDetection] | None = None
    raw_detections = form.get("detections")
    if raw_detections:
        try:
            detections = detections_from_payload(str(raw_detections))
        except RosterInputError as exc:
            return _error(status_code=400, code="ROSTER_INPUT_ERROR", message=str(exc))

    try:
        result = await asyncio.wait_for(
            asyncio.to_thread(
                get_service().process,
                payload,
                debug_mode,
                detections,
            ),
            timeout=ROSTER_TIMEOUT_SECONDS,
        )
    except asyncio.TimeoutError:
        logger.exception("roster scan timed out")
        return _error(
            status_code=504,
            code="ROSTER_TIMEOUT",
            message=f"roster scan exceeded timeout {ROSTER_TIMEOUT_SECONDS:.2f}s",
        )
    except GridAnchorError as exc:
        return _error(
            status_code=422,
            code="GRID_NOT_ANCHORED",
            message=f"could not read a roster grid from this image: {exc}",
        )
    except RosterInputError as exc:
        return _error(status_code=400, code="ROSTER_INPUT_ERROR", message=str(exc))
    except RosterDependencyError as exc:
        logger.exception("roster dependency unavailable")
        return _error(status_code=503, code="OCR_ENGINE_UNAVAILABLE", message=str(exc))
    except RosterScanError as exc:
        logger.exception("roster processing failed")
        return _error(status_code=500, code="ROSTER_PROCESSING_ERROR", message=str(exc))

    body: dict[str, object] = {"ok": True, **result.to_dict()}
    if result.debug_image is not None:
        body["debugImage"] = base64.b64encode(result.debug_image).decode("ascii")
    return body
