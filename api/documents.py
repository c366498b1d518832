"""
Document proxy endpoint
"""
from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from services.exceptions import DocumentDownloadError
from utils.logging_config import get_logger

router = APIRouter(prefix="/documents")
logger = get_logger(__name__, "app")


class DocumentRequest(BaseModel):
    url: str
    filename: Optional[str] = "document"
    format: Optional[str] = "pdf"


@router.post("/download")
def download_document(payload: DocumentRequest, request: Request):
    service = request.app.state.documents
    try:
        document = service.download(payload.url, payload.filename, payload.format)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except DocumentDownloadError as e:
        logger.error(f"Error downloading document: {e}")
        return JSONResponse(status_code=502, content=service.fallback(payload.url, e))

    return Response(content=document.content, media_type=document.content_type, headers=document.headers)
