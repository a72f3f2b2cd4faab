"""EcoScan waste classification service.

This FastAPI app is the backend of the EcoScan web UI. It accepts one uploaded
photo, asks a hosted multimodal model for a waste category and returns:

  {"category": "Plastic", "confidence": 0.92, "reasoning": "..."}

- Accept multipart upload: `image` (required).
- One chat-completion call per request (no retries, no batching).
- Model text is normalized by `ecoscan.shared.classify_contract`, which always
  yields a result (strict JSON -> embedded JSON -> keyword fallback).
- Errors are returned as {"error": "...", "details": "..."}; 429/402 from the
  gateway are passed through so the UI can tell the user what happened.
- Every response carries permissive CORS headers (the UI is served from
  another origin).

Run (from repo root):
  uvicorn ecoscan.services.classify_service:app --host 0.0.0.0 --port 8000

Quick curl:
  curl -X POST http://127.0.0.1:8000/api/v1/classify-waste -F "image=@test.jpg"
"""

from __future__ import annotations

import base64
import io
import logging
import os
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from PIL import Image
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException

from ecoscan.shared.classify_contract import (
    ClassificationResult,
    ErrorResponse,
    build_system_prompt,
    build_user_prompt,
    normalize_completion,
)
from ecoscan.shared.errors import (
    ClassifyError,
    ConfigurationError,
    EmptyResponseError,
    MissingInputError,
    UpstreamError,
    error_for_upstream_status,
)
from ecoscan.shared.waste_catalogue import list_categories


LOGGER = logging.getLogger(__name__)

SERVICE_VERSION = "1.0"

DEFAULT_MODEL = "google/gemini-2.5-flash"
DEFAULT_GATEWAY_URL = "https://ai.gateway.lovable.dev/v1/chat/completions"
DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024
TEMPERATURE = 0.3

GENERIC_ERROR_DETAILS = "Failed to classify waste. Please try again."
FALLBACK_MIME_TYPE = "application/octet-stream"
ACCEPTED_IMAGE_TYPES = ["image/jpeg", "image/png", "image/webp"]

CORS_HEADERS: Dict[str, str] = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
}


@dataclass(frozen=True)
class ClassifySettings:
    api_key: Optional[str]
    model: str = DEFAULT_MODEL
    gateway_url: str = DEFAULT_GATEWAY_URL
    # None means the core never times out; the caller owns deadlines.
    upstream_timeout_s: Optional[float] = None
    # Published for the UI; the service itself does not reject large uploads.
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES

    @classmethod
    def from_env(cls) -> "ClassifySettings":
        # Primary: LOVABLE_API_KEY. Also accept LLM_API_KEY for local debugging.
        api_key = os.getenv("LOVABLE_API_KEY") or os.getenv("LLM_API_KEY")

        timeout_raw = os.getenv("ECOSCAN_UPSTREAM_TIMEOUT_S", "").strip()
        try:
            timeout_s = float(timeout_raw) if timeout_raw else None
        except ValueError as exc:
            raise ConfigurationError(f"Invalid ECOSCAN_UPSTREAM_TIMEOUT_S: {timeout_raw!r}") from exc

        max_bytes_raw = os.getenv("ECOSCAN_MAX_UPLOAD_BYTES", "").strip()
        try:
            max_bytes = int(max_bytes_raw) if max_bytes_raw else DEFAULT_MAX_UPLOAD_BYTES
        except ValueError as exc:
            raise ConfigurationError(f"Invalid ECOSCAN_MAX_UPLOAD_BYTES: {max_bytes_raw!r}") from exc

        return cls(
            api_key=api_key or None,
            model=os.getenv("ECOSCAN_MODEL", "").strip() or DEFAULT_MODEL,
            gateway_url=os.getenv("ECOSCAN_GATEWAY_URL", "").strip() or DEFAULT_GATEWAY_URL,
            upstream_timeout_s=timeout_s,
            max_upload_bytes=max_bytes,
        )

    def require_api_key(self) -> str:
        if not self.api_key:
            raise ConfigurationError()
        return self.api_key


def _error_response(exc: Exception) -> JSONResponse:
    """Single mapping from error kinds to the wire envelope."""

    if isinstance(exc, ClassifyError):
        status_code = exc.status_code
        message = exc.message
    else:
        status_code = 500
        message = str(exc) or exc.__class__.__name__

    payload: ErrorResponse = {"error": message}
    if status_code >= 500:
        payload["details"] = GENERIC_ERROR_DETAILS
    return JSONResponse(status_code=status_code, content=payload)


def _sniff_mime_type(image_bytes: bytes) -> Optional[str]:
    """Detect the image format from its header without decoding pixels."""

    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            fmt = img.format
    except Exception:  # noqa: BLE001 - best effort only
        return None
    if not fmt:
        return None
    return Image.MIME.get(fmt.upper())


def _resolve_mime_type(declared: Optional[str], image_bytes: bytes) -> str:
    mime = (declared or "").split(";", 1)[0].strip()
    if mime and mime.lower() != FALLBACK_MIME_TYPE:
        # Trust the client, even for non-image types; the model decides.
        return mime
    return _sniff_mime_type(image_bytes) or FALLBACK_MIME_TYPE


def _image_to_data_url(image_bytes: bytes, mime_type: str) -> str:
    b64 = base64.b64encode(image_bytes).decode("ascii")
    return f"data:{mime_type};base64,{b64}"


def _is_truncated_multipart(content_type: str, body: bytes) -> bool:
    # A complete multipart body ends with the closing `--boundary--` delimiter.
    if not content_type.lower().startswith("multipart/form-data") or not body:
        return False
    return not body.rstrip().endswith(b"--")


async def _read_upload(request: Request) -> tuple[bytes, Optional[str]]:
    """Return the `image` file bytes and declared type from a multipart request."""

    body = await request.body()
    if _is_truncated_multipart(request.headers.get("content-type", ""), body):
        raise ValueError("Malformed multipart body")

    form = await request.form()
    try:
        image = form.get("image")
        # A plain text field named `image` is not an upload.
        if not isinstance(image, UploadFile):
            raise MissingInputError()
        image_bytes = await image.read()
        content_type = image.content_type
    finally:
        await form.close()

    # Browsers send an empty file part when nothing was selected.
    if not image_bytes:
        raise MissingInputError()
    return image_bytes, content_type


def _completion_payload(image_url: str, *, model: str) -> dict[str, Any]:
    return {
        "model": model,
        "messages": [
            {"role": "system", "content": build_system_prompt()},
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": build_user_prompt()},
                    {"type": "image_url", "image_url": {"url": image_url}},
                ],
            },
        ],
        "temperature": TEMPERATURE,
    }


def _extract_completion_text(resp_json: Any) -> str:
    """Pull `choices[0].message.content` out of a chat-completion response."""

    if not isinstance(resp_json, dict):
        raise EmptyResponseError()
    choices = resp_json.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        raise EmptyResponseError()
    message = choices[0].get("message")
    content = message.get("content") if isinstance(message, dict) else None

    # Some gateways return content parts instead of a plain string.
    if isinstance(content, list):
        content = "".join(
            str(part.get("text", ""))
            for part in content
            if isinstance(part, dict) and part.get("type") == "text"
        )

    if not isinstance(content, str) or not content.strip():
        raise EmptyResponseError()
    return content


async def _request_completion(image_url: str, *, settings: ClassifySettings, api_key: str) -> str:
    payload = _completion_payload(image_url, model=settings.model)
    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }

    async with httpx.AsyncClient(timeout=httpx.Timeout(settings.upstream_timeout_s)) as client:
        resp = await client.post(settings.gateway_url, headers=headers, json=payload)

    if not resp.is_success:
        LOGGER.error("AI Gateway error: %s %s", resp.status_code, resp.text)
        raise error_for_upstream_status(resp.status_code)

    try:
        resp_json = resp.json()
    except ValueError as exc:
        LOGGER.error("AI Gateway returned non-JSON body: %s", resp.text[:500])
        raise UpstreamError("AI Gateway returned an invalid response") from exc
    return _extract_completion_text(resp_json)


async def classify_image(
    image_bytes: bytes,
    content_type: Optional[str],
    *,
    settings: ClassifySettings,
    api_key: str,
) -> ClassificationResult:
    """Encode one image, ask the model, normalize its answer."""

    mime_type = _resolve_mime_type(content_type, image_bytes)
    image_url = _image_to_data_url(image_bytes, mime_type)

    LOGGER.info(
        "Calling AI gateway for waste classification (model=%s, mime=%s, bytes=%d)",
        settings.model,
        mime_type,
        len(image_bytes),
    )
    completion = await _request_completion(image_url, settings=settings, api_key=api_key)
    LOGGER.info("AI Response: %s", completion)

    return normalize_completion(completion)


def create_app(
    settings_loader: Callable[[], ClassifySettings] = ClassifySettings.from_env,
) -> FastAPI:
    """Build the app; `settings_loader` runs on every request so key fixes apply live."""

    app = FastAPI(title="EcoScan Classify Service", version=SERVICE_VERSION)

    @app.middleware("http")
    async def add_cors_headers(request: Request, call_next):
        # Preflight: headers only, no routing.
        if request.method == "OPTIONS":
            return Response(status_code=200, headers=CORS_HEADERS)

        response = await call_next(request)
        for key, value in CORS_HEADERS.items():
            response.headers[key] = value
        return response

    # Keep 404/405 in the same JSON envelope as the API.
    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.get("/health")
    def health() -> Dict[str, str]:
        return {"status": "ok"}

    @app.get("/api/v1/categories")
    def categories() -> JSONResponse:
        try:
            settings = settings_loader()
        except Exception as exc:  # noqa: BLE001 - boundary
            LOGGER.error("Error loading settings: %s", exc)
            return _error_response(exc)
        return JSONResponse(
            status_code=200,
            content={
                "categories": list_categories(),
                "max_upload_bytes": settings.max_upload_bytes,
                "accepted_types": ACCEPTED_IMAGE_TYPES,
            },
        )

    @app.post("/api/v1/classify-waste")
    async def classify_waste(request: Request) -> JSONResponse:
        try:
            # Fail fast on configuration before touching the upload or the network.
            settings = settings_loader()
            api_key = settings.require_api_key()

            # Parsed here, not by FastAPI, so body errors share the envelope below.
            image_bytes, content_type = await _read_upload(request)

            result = await classify_image(
                image_bytes,
                content_type,
                settings=settings,
                api_key=api_key,
            )
        except ClassifyError as exc:
            if exc.status_code >= 500:
                LOGGER.error("Error in classify-waste: %s", exc)
            else:
                LOGGER.warning("classify-waste rejected: %s", exc)
            return _error_response(exc)
        except Exception as exc:  # noqa: BLE001 - no request may go unanswered
            LOGGER.exception("Unexpected error in classify-waste")
            return _error_response(exc)

        return JSONResponse(status_code=200, content=result)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    uvicorn.run(app, host="0.0.0.0", port=8000)
