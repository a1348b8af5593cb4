"""Utility functions served under ``/functions/v1``.

These mirror small serverless handlers: each takes a JSON body, answers with
a JSON object, and reports problems as ``{"error": ...}`` with a 4xx/5xx
status instead of FastAPI's default validation envelope.
"""

import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from .assistant import AssistantError, complete_chat
from .database import get_db_session
from .email_service import dispatch_email, render_bulk_email, render_registration_email
from .schemas import AssistRequest, BulkEmailRequest, RegistrationEmailRequest


logger = logging.getLogger(__name__)

functions_router = APIRouter(prefix="/functions/v1", tags=["Functions"])


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


async def _read_json(request: Request) -> dict | None:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    return body if isinstance(body, dict) else None


@functions_router.post("/og-assist")
async def og_assist(request: Request):
    body = await _read_json(request)
    if body is None or not isinstance(body.get("messages"), list):
        return _error(400, "Messages array is required")
    try:
        payload = AssistRequest.model_validate(body)
    except ValidationError:
        return _error(400, "Each message needs a user/assistant role and content")

    try:
        content = await run_in_threadpool(complete_chat, [m.model_dump() for m in payload.messages])
    except AssistantError as exc:
        logger.error("og-assist failed: %s", exc)
        return _error(500, str(exc))
    return {"content": content}


@functions_router.post("/send-bulk-email")
async def send_bulk_email(request: Request, db: Session = Depends(get_db_session)):
    body = await _read_json(request)
    if body is None or not body.get("recipients"):
        return _error(400, "No recipients provided")
    try:
        payload = BulkEmailRequest.model_validate(body)
    except ValidationError:
        return _error(400, "Recipients, subject and body are required")

    html_body = render_bulk_email(payload.subject, payload.body, payload.sender_name)
    log = await run_in_threadpool(
        dispatch_email,
        db,
        recipients=payload.recipients,
        subject=payload.subject,
        body_html=html_body,
    )
    if log.status == "failed":
        return _error(500, "Failed to send email")
    logger.info("Bulk email '%s' %s for %d recipient(s)", payload.subject, log.status, len(payload.recipients))
    return {
        "success": True,
        "message": f"Email {log.status} for {len(payload.recipients)} recipient(s)",
        "recipientCount": len(payload.recipients),
    }


@functions_router.post("/send-registration-email")
async def send_registration_email(request: Request, db: Session = Depends(get_db_session)):
    body = await _read_json(request)
    if body is None:
        return _error(400, "Missing required fields")
    try:
        payload = RegistrationEmailRequest.model_validate(body)
    except ValidationError:
        return _error(400, "Missing required fields")

    subject, html_body = render_registration_email(
        first_name=payload.first_name,
        last_name=payload.last_name,
        email=payload.email,
        role=payload.role,
    )
    log = await run_in_threadpool(
        dispatch_email,
        db,
        recipients=[payload.email],
        subject=subject,
        body_html=html_body,
    )
    if log.status == "failed":
        return _error(500, "Failed to send email")
    return {"success": True, "message": "Registration email processed"}
