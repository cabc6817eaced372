from __future__ import annotations

import logging

from fastapi import APIRouter, File, HTTPException, Request, Response, UploadFile, status

from ...config import get_settings
from ...domain.errors import ContextStoreError, ExtractionError
from ...domain.models import UploadResponse
from ...observability.metrics import UPLOADS
from ...services.context_store import get_context_store
from ...services.doc_ingest import extract_text
from ..session import ensure_token

logger = logging.getLogger("companion.api.uploads")

router = APIRouter(tags=["uploads"])


@router.post("/upload", response_model=UploadResponse)
def upload_document(
    request: Request,
    response: Response,
    file: UploadFile = File(...),
) -> UploadResponse:
    settings = get_settings()
    filename = file.filename or "upload"

    raw = file.file.read(settings.max_upload_bytes + 1)
    if len(raw) > settings.max_upload_bytes:
        UPLOADS.labels(outcome="rejected").inc()
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"Document exceeds the {settings.max_upload_bytes} byte upload limit.",
        )
    if not raw:
        UPLOADS.labels(outcome="rejected").inc()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Uploaded document is empty.")

    try:
        text = extract_text(filename, raw)
    except ExtractionError as exc:
        UPLOADS.labels(outcome="failed").inc()
        logger.warning("Extraction failed for %s: %s", filename, exc.reason)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to read or parse document.",
        ) from exc

    token = ensure_token(request, response, settings)
    try:
        get_context_store().put(token, text, filename=filename)
    except ContextStoreError as exc:
        UPLOADS.labels(outcome="failed").inc()
        logger.error("Context store unavailable while saving %s: %s", filename, exc)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Document parsed but could not be stored; try again shortly.",
        ) from exc

    UPLOADS.labels(outcome="stored").inc()
    logger.info("Stored %s chars of context from %s", len(text), filename)
    return UploadResponse(
        filename=filename,
        characters=len(text),
        message=f"File uploaded and parsed successfully: {filename}",
    )
