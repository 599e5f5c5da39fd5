"""
Email routes. Sending, previewing and history need role admin or
marketing_manager.

    POST /api/emails/send          {to, templateType, data, subject?}
    POST /api/emails/bulk-send     {emails: [...]} → {total, successful, failed, results}
    POST /api/emails/preview       {templateType, data} → rendered html, no send
    GET  /api/emails/templates     known template types and default subjects
    GET  /api/emails/status/{id}   delivery status of one email
    GET  /api/emails/history       filters to, templateType, status, dateFrom, dateTo
"""

from fastapi import APIRouter, Depends, Request

from clutch.auth import Caller, get_caller, require_roles
from clutch.dependencies import get_email_service
from clutch.routes.resources import ENVELOPE
from clutch.schemas.envelope import ok
from clutch.schemas.requests import BulkEmailRequest, EmailRequest, PreviewRequest
from clutch.services.email_service import EmailService

router = APIRouter(prefix="/api/emails", tags=["Emails"])

email_sender = require_roles("marketing_manager")


@router.post("/send", summary="Send one templated email", **ENVELOPE)
async def send_email(
    body: EmailRequest,
    emails: EmailService = Depends(get_email_service),
    caller: Caller = Depends(email_sender),
):
    summary = await emails.send(body.to, body.templateType, body.data, body.subject, caller)
    message = "Email sent successfully" if summary["status"] == "sent" else "Email delivery failed"
    return ok(summary, message=message)


@router.post("/bulk-send", summary="Send several templated emails", **ENVELOPE)
async def bulk_send(
    body: BulkEmailRequest,
    emails: EmailService = Depends(get_email_service),
    caller: Caller = Depends(email_sender),
):
    result = await emails.bulk_send([entry.model_dump() for entry in body.emails], caller)
    return ok(result, message=f"Bulk email completed: {result['successful']} sent, {result['failed']} failed")


@router.post("/preview", summary="Render a template without sending", **ENVELOPE)
async def preview_email(
    body: PreviewRequest,
    emails: EmailService = Depends(get_email_service),
    caller: Caller = Depends(email_sender),
):
    return ok(emails.preview(body.templateType, body.data))


@router.get("/templates", summary="Available email templates", **ENVELOPE)
async def list_templates(
    emails: EmailService = Depends(get_email_service),
    caller: Caller = Depends(get_caller),
):
    return ok(emails.templates())


@router.get("/status/{email_id}", summary="Delivery status of an email", **ENVELOPE)
async def email_status(
    email_id: str,
    emails: EmailService = Depends(get_email_service),
    caller: Caller = Depends(get_caller),
):
    return ok(await emails.status(email_id))


@router.get("/history", summary="Sent email history", **ENVELOPE)
async def email_history(
    request: Request,
    emails: EmailService = Depends(get_email_service),
    caller: Caller = Depends(email_sender),
):
    return ok(await emails.history(request.query_params))
