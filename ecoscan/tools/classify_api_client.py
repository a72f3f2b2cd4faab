"""Quick local client to test the classify API response.

Edit the CONFIG section below, then run from repo root:
  python -m ecoscan.tools.classify_api_client [path/to/image.jpg]

This script is intentionally simple so frontend teammates can reproduce
API behavior without learning curl or writing code.

Endpoint contract:
  - POST /api/v1/classify-waste (multipart/form-data)
  - fields: image (required)

Server entrypoint (in another terminal):
  python -m uvicorn ecoscan.services.classify_service:app --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import json
import mimetypes
import sys
import time
from pathlib import Path
from typing import Any

import httpx

from ecoscan.shared.waste_catalogue import confidence_level, confidence_percent, disposal_tip


# =========================
# CONFIG (EDIT ME)
# =========================
BASE_URL = "http://127.0.0.1:8000"
IMAGE_PATH = "samples/bottle.jpg"

# The service itself has no timeout; keep the client bounded.
TIMEOUT_S = 60.0


def _guess_mime_type(path: Path) -> str:
    mime, _ = mimetypes.guess_type(str(path))
    return mime or "application/octet-stream"


def summarize(body: dict[str, Any]) -> list[str]:
    """Render a success body the way the result card shows it."""

    category = str(body.get("category", ""))
    confidence = float(body.get("confidence", 0.0))
    return [
        f"category:   {category}",
        f"confidence: {confidence_percent(confidence)}% ({confidence_level(confidence)})",
        f"reasoning:  {body.get('reasoning', '')}",
        f"tip:        {disposal_tip(category)}",
    ]


def main() -> int:
    image_path = Path(sys.argv[1] if len(sys.argv) > 1 else IMAGE_PATH)
    if not image_path.exists():
        print(f"[error] Image not found: {image_path}", file=sys.stderr)
        return 2

    url = f"{BASE_URL.rstrip('/')}/api/v1/classify-waste"
    mime = _guess_mime_type(image_path)
    t0 = time.perf_counter()
    try:
        with image_path.open("rb") as f:
            files = {"image": (image_path.name, f, mime)}
            resp = httpx.post(url, files=files, timeout=TIMEOUT_S)
    except httpx.HTTPError as exc:
        print(f"[error] Request failed: {exc}", file=sys.stderr)
        return 3

    dt_ms = int(round((time.perf_counter() - t0) * 1000.0))
    print(f"HTTP {resp.status_code} ({dt_ms} ms) -> {url}")

    content_type = resp.headers.get("content-type", "")
    if "application/json" not in content_type:
        print(resp.text)
        return 1

    body = resp.json()
    print(json.dumps(body, indent=2, ensure_ascii=False))
    if resp.status_code != 200:
        return 1

    print("\n[result]")
    for line in summarize(body):
        print(line)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
