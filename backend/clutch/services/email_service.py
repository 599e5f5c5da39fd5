"""
Clutch Backend — Email Templating and Delivery
================================================

What:  Renders branded transactional/marketing emails and tracks their delivery.
Why:   Marketing and admin tools send the same handful of templates; keeping
       rendering and the delivery log server-side gives one audit trail in
       the `emails` collection.
How:   - Jinja2 renders packaged templates (clutch/templates/email/) with HTML
         autoescaping; every template extends the shared branded layout.
       - An EmailProvider does the actual delivery. The default
         LoggingEmailProvider only logs, so nothing leaves the process until a
         real provider (SMTP, SES, SendGrid) is plugged into create_app().
       - send() stores the rendered email as `pending`, calls the provider,
         then marks it `sent` (with sentAt) or `failed` (with error).
Who:   Used by the /api/emails routes.

Delivery is best-effort: a provider failure is recorded on the email
record and reported to the caller, never retried.
"""

import logging
import re
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from jinja2 import Environment, PackageLoader, select_autoescape

from clutch.auth import Caller
from clutch.config import settings
from clutch.exceptions import NotFoundError, ValidationError
from clutch.services.crud import store_errors
from clutch.services.filters import Eq, Filter, Range, SortKey, parse_datetime, parse_id
from clutch.services.store_base import DocumentStore, Record

logger = logging.getLogger(__name__)

COLLECTION = "emails"
HISTORY_LIMIT = 50
FALLBACK_SUBJECT = "Clutch Notification"

# What: templateType → (template file, default subject)
TEMPLATES: Dict[str, Dict[str, str]] = {
    "welcome": {"template": "welcome.html", "subject": "Welcome to Clutch - Your Automotive Service Companion"},
    "passwordReset": {"template": "password_reset.html", "subject": "Password Reset Request - Clutch"},
    "passwordChanged": {"template": "password_changed.html", "subject": "Password Changed Successfully - Clutch"},
    "accountCreated": {"template": "account_created.html", "subject": "Account Created Successfully - Clutch"},
    "emailVerification": {"template": "email_verification.html", "subject": "Verify Your Email - Clutch"},
    "trialEnded": {"template": "trial_ended.html", "subject": "Your Free Trial Has Ended - Clutch"},
    "userInvitation": {"template": "user_invitation.html", "subject": "You've Been Invited to Join Clutch"},
    "orderConfirmation": {"template": "order_confirmation.html", "subject": "Order Confirmation - Clutch"},
    "maintenanceReminder": {"template": "maintenance_reminder.html", "subject": "Vehicle Maintenance Reminder - Clutch"},
    "serviceCompleted": {"template": "service_completed.html", "subject": "Service Completed - Clutch"},
    "paymentReceived": {"template": "payment_received.html", "subject": "Payment Received - Clutch"},
    "appointmentReminder": {"template": "appointment_reminder.html", "subject": "Appointment Reminder - Clutch"},
    "newsletter": {"template": "newsletter.html", "subject": "Clutch Newsletter - Latest Updates"},
    "promotional": {"template": "promotional.html", "subject": "Special Offer - Clutch"},
}
DEFAULT_TEMPLATE = "default.html"

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def canonical_type(template_type: str) -> str:
    """Accepts kebab-case aliases ("password-reset") for camelCase types."""
    head, *rest = str(template_type).strip().split("-")
    return head + "".join(part.capitalize() for part in rest)


# ── Rendering ─────────────────────────────────────────────────────────────
class TemplateRenderer:
    """Jinja2 environment over the packaged email templates."""

    def __init__(self) -> None:
        self._env = Environment(
            loader=PackageLoader("clutch", "templates/email"),
            autoescape=select_autoescape(["html"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def _brand(self) -> Dict[str, str]:
        return {
            "name": settings.brand_name,
            "primary_color": settings.brand_primary_color,
            "website": settings.brand_website,
            "support_email": settings.support_email,
        }

    def render(self, template_type: str, data: Optional[Mapping[str, Any]] = None) -> str:
        """Renders `template_type`; unknown types use the generic notification."""
        entry = TEMPLATES.get(canonical_type(template_type))
        template = self._env.get_template(entry["template"] if entry else DEFAULT_TEMPLATE)
        return template.render(
            brand=self._brand(),
            data=dict(data or {}),
            year=_now().year,
        )

    def subject(self, template_type: str, override: Optional[str] = None) -> str:
        if override:
            return override
        entry = TEMPLATES.get(canonical_type(template_type))
        return entry["subject"] if entry else FALLBACK_SUBJECT


# ── Delivery ──────────────────────────────────────────────────────────────
class EmailProvider(ABC):
    """Transport that hands a rendered email to the outside world."""

    @abstractmethod
    async def deliver(self, recipient: str, subject: str, html: str) -> None:
        """Raises on failure; the message is then recorded as failed."""
        ...


class LoggingEmailProvider(EmailProvider):
    """Logs instead of sending. The default until a real transport is configured."""

    async def deliver(self, recipient: str, subject: str, html: str) -> None:
        logger.info("Email to %s: %s (%d bytes, from %s)", recipient, subject, len(html), settings.email_from)


def _summary(email: Record) -> Dict[str, Any]:
    return {
        "emailId": email["id"],
        "to": email.get("to"),
        "subject": email.get("subject"),
        "templateType": email.get("templateType"),
        "status": email.get("status"),
        "createdAt": email.get("createdAt"),
        "sentAt": email.get("sentAt"),
        "error": email.get("error"),
    }


class EmailService:
    """Renders, records and delivers emails. Built per request over the request's store."""

    def __init__(
        self,
        store: DocumentStore,
        provider: EmailProvider,
        renderer: Optional[TemplateRenderer] = None,
    ):
        self.store = store
        self.provider = provider
        self.renderer = renderer or TemplateRenderer()

    def templates(self) -> Dict[str, Dict[str, str]]:
        return {name: {"subject": entry["subject"], "template": entry["template"]} for name, entry in TEMPLATES.items()}

    def preview(self, template_type: Optional[str], data: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        if not template_type:
            raise ValidationError("Template type is required", code="MISSING_REQUIRED_FIELDS", field="templateType")
        return {
            "html": self.renderer.render(template_type, data),
            "subject": self.renderer.subject(template_type),
            "templateType": template_type,
            "data": dict(data or {}),
        }

    async def send(
        self,
        to: Optional[str],
        template_type: Optional[str],
        data: Optional[Mapping[str, Any]],
        subject: Optional[str],
        caller: Caller,
    ) -> Dict[str, Any]:
        """
        Renders and delivers one email.

        Returns the delivery summary; a provider failure is reflected in
        status="failed" rather than raised.

        Raises:
            ValidationError: MISSING_REQUIRED_FIELDS or INVALID_EMAIL
        """
        if not to or not template_type:
            raise ValidationError(
                "Recipient email and template type are required",
                code="MISSING_REQUIRED_FIELDS",
            )
        to = str(to).strip()
        if not EMAIL_PATTERN.match(to):
            raise ValidationError(f"Invalid email address: {to}", code="INVALID_EMAIL", field="to")

        html = self.renderer.render(template_type, data)
        now = _now()
        with store_errors("SEND_EMAIL_FAILED", "Failed to record email"):
            email = await self.store.insert(COLLECTION, {
                "to": to,
                "subject": self.renderer.subject(template_type, subject),
                "templateType": template_type,
                "data": dict(data or {}),
                "htmlContent": html,
                "status": "pending",
                "ownerId": caller.id,
                "createdAt": now,
                "updatedAt": now,
                "sentAt": None,
                "error": None,
            })

        try:
            await self.provider.deliver(to, email["subject"], html)
        except Exception as e:
            logger.error("Email %s to %s failed: %s", email["id"], to, str(e))
            changes = {"status": "failed", "error": str(e)}
        else:
            logger.info("Email %s sent to %s", email["id"], to)
            changes = {"status": "sent", "sentAt": _now()}

        changes["updatedAt"] = _now()
        with store_errors("SEND_EMAIL_FAILED", "Failed to record email status"):
            email = await self.store.update(COLLECTION, email["id"], changes)
        return _summary(email)

    async def bulk_send(self, emails: List[Mapping[str, Any]], caller: Caller) -> Dict[str, Any]:
        """Sends each entry independently; validation failures are reported per entry."""
        if not emails:
            raise ValidationError("Emails array is required", code="MISSING_REQUIRED_FIELDS", field="emails")

        results = []
        for entry in emails:
            try:
                summary = await self.send(
                    entry.get("to"), entry.get("templateType"), entry.get("data"), entry.get("subject"), caller
                )
                results.append({"success": summary["status"] == "sent", "data": summary})
            except ValidationError as e:
                results.append({"success": False, "error": e.code, "message": e.message, "to": entry.get("to")})

        successful = sum(1 for r in results if r["success"])
        return {
            "total": len(emails),
            "successful": successful,
            "failed": len(emails) - successful,
            "results": results,
        }

    async def status(self, email_id: str) -> Dict[str, Any]:
        email_id = parse_id(email_id, "emailId")
        with store_errors("GET_EMAIL_STATUS_FAILED", "Failed to retrieve email status"):
            email = await self.store.get(COLLECTION, email_id)
        if email is None:
            raise NotFoundError("email", email_id, code="EMAIL_NOT_FOUND", message="Email not found")
        return _summary(email)

    async def history(self, params: Mapping[str, Any]) -> List[Dict[str, Any]]:
        """Newest first; filters to, templateType, status, dateFrom, dateTo; limit (default 50)."""
        clauses = [Eq(name, params[name]) for name in ("to", "templateType", "status") if params.get(name)]
        date_from, date_to = params.get("dateFrom"), params.get("dateTo")
        if date_from or date_to:
            clauses.append(Range(
                "createdAt",
                gte=parse_datetime(date_from, "dateFrom") if date_from else None,
                lte=parse_datetime(date_to, "dateTo") if date_to else None,
            ))

        limit = HISTORY_LIMIT
        if params.get("limit"):
            try:
                limit = max(1, min(int(params["limit"]), settings.max_page_limit))
            except (TypeError, ValueError):
                raise ValidationError("'limit' must be an integer", code="INVALID_PAGINATION", field="limit")

        with store_errors("GET_EMAIL_HISTORY_FAILED", "Failed to retrieve email history"):
            emails = await self.store.find(
                COLLECTION,
                Filter(tuple(clauses)),
                sort=(SortKey("createdAt", descending=True),),
                limit=limit,
            )
        return [_summary(email) for email in emails]
