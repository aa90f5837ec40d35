"""Notification service for terminal case transitions.

Sends notifications to the data-protection office when:
- A DSR reaches COMPLETED, REJECTED or FAILED
- A breach incident is REPORTED or CLOSED

Supports multiple channels:
- EMAIL: Real async SMTP via aiosmtplib
- WEBHOOK: HTTP POST to any webhook URL (Slack, Teams, custom)
- FALLBACK: Structured log entry when no channel is configured

Configuration via environment variables (loaded through Settings):
- SMTP_HOST, SMTP_PORT, SMTP_USER, SMTP_PASSWORD, SMTP_FROM, SMTP_USE_TLS
- NOTIFICATION_RECIPIENT, WEBHOOK_URL

All notification calls are fire-and-forget: failures are logged but never
propagate to the caller so a committed transition is never reported as failed.
"""

from __future__ import annotations

import asyncio
import email.mime.text
import email.utils
from typing import Any

import aiosmtplib
import httpx
import structlog

from caseflow.compliance.models import BreachIncident, DataSubjectRequest, TransitionRecord
from caseflow.compliance.state_machine import is_notifiable
from caseflow.config import Settings, get_settings

log = structlog.get_logger(__name__)


class CaseNotificationService:
    """Dispatch terminal-transition notices.

    Instantiate with explicit credentials (useful for testing), or call
    ``CaseNotificationService.from_settings()`` to read from the app config.
    """

    def __init__(
        self,
        smtp_host: str | None = None,
        smtp_port: int = 587,
        smtp_user: str | None = None,
        smtp_password: str | None = None,
        smtp_from: str = "noreply@caseflow.local",
        smtp_use_tls: bool = False,
        recipient: str = "dpo@caseflow.local",
        webhook_url: str | None = None,
    ) -> None:
        """Initialise notification service.

        Args:
            smtp_host: SMTP server hostname.  ``None`` disables email.
            smtp_port: SMTP server port (587 = STARTTLS, 465 = SSL/TLS).
            smtp_user: SMTP login username.
            smtp_password: SMTP login password.
            smtp_from: Sender address used in the ``From`` header.
            smtp_use_tls: Use implicit TLS (port 465).
            recipient: Mailbox receiving every notice.
            webhook_url: Generic webhook URL (Slack / Teams / custom).
        """
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.smtp_from = smtp_from
        self.smtp_use_tls = smtp_use_tls
        self.recipient = recipient
        self.webhook_url = webhook_url
        self._background: set[asyncio.Task[None]] = set()

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> CaseNotificationService:
        cfg = settings or get_settings()
        return cls(
            smtp_host=cfg.smtp_host,
            smtp_port=cfg.smtp_port,
            smtp_user=cfg.smtp_user,
            smtp_password=(
                cfg.smtp_password.get_secret_value() if cfg.smtp_password else None
            ),
            smtp_from=cfg.smtp_from,
            smtp_use_tls=cfg.smtp_use_tls,
            recipient=cfg.notification_recipient,
            webhook_url=cfg.webhook_url,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def notify_transition(
        self,
        transition: TransitionRecord,
        case: DataSubjectRequest | BreachIncident,
    ) -> bool:
        """Send a notice for *transition* if it is one the DPO tracks.

        Tries email first, then webhook, then structured log fallback.

        Returns:
            ``False`` if the transition is not notifiable, otherwise ``True``.
        """
        if not is_notifiable(transition):
            return False

        subject = self._format_subject(transition, case)
        body = self._format_body(transition, case)

        if self.smtp_host or self.webhook_url:
            self._fire_and_forget(self._deliver(subject, body), "delivery")
        else:
            # Fallback: structured log entry so the event is never silently lost.
            log.info(
                "notification.transition_fallback",
                entity_type=transition.entity_type,
                entity_id=str(transition.entity_id),
                new_status=transition.new_status,
                subject=subject,
            )
        return True

    async def _deliver(self, subject: str, body: str) -> None:
        """Try email, then webhook; log when every configured channel failed."""
        if self.smtp_host and await self._send_email(self.recipient, subject, body):
            return
        if self.webhook_url and await self._send_webhook(subject, body):
            return
        log.warning("notification.delivery_failed", subject=subject)

    async def drain(self) -> None:
        """Wait for scheduled deliveries; used at shutdown and in tests."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    # ------------------------------------------------------------------
    # Fire-and-forget wrapper
    # ------------------------------------------------------------------

    def _fire_and_forget(self, send: Any, channel: str) -> None:
        async def _run() -> None:
            try:
                await send
            except Exception as exc:
                log.error("notification.background_failed", channel=channel, error=str(exc))

        task = asyncio.create_task(_run())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    # ------------------------------------------------------------------
    # Real transport implementations
    # ------------------------------------------------------------------

    async def _send_email(self, to: str, subject: str, body: str) -> bool:
        """Send an email via SMTP using aiosmtplib.

        Returns:
            ``True`` on success, ``False`` on failure.
        """
        try:
            message = email.mime.text.MIMEText(body, "plain", "utf-8")
            message["From"] = self.smtp_from
            message["To"] = to
            message["Subject"] = subject
            message["Date"] = email.utils.formatdate(localtime=True)
            message["Message-ID"] = email.utils.make_msgid()

            smtp_kwargs: dict[str, Any] = {
                "hostname": self.smtp_host,
                "port": self.smtp_port,
                "use_tls": self.smtp_use_tls,
            }
            if self.smtp_user:
                smtp_kwargs["username"] = self.smtp_user
            if self.smtp_password:
                smtp_kwargs["password"] = self.smtp_password

            await aiosmtplib.send(message, **smtp_kwargs)

            log.info("notification.email_sent", to=to, subject=subject, smtp_host=self.smtp_host)
            return True

        except aiosmtplib.SMTPException as exc:
            log.error("notification.email_smtp_error", to=to, error=str(exc))
            return False
        except OSError as exc:
            log.error("notification.email_failed", to=to, error=str(exc))
            return False

    async def _send_webhook(self, title: str, text: str) -> bool:
        """POST a Slack/Teams compatible JSON payload to the webhook URL.

        Returns:
            ``True`` on HTTP 2xx, ``False`` otherwise.
        """
        payload: dict[str, Any] = {
            # Slack format
            "text": f"*{title}*\n{text}",
            # Teams MessageCard format (ignored by Slack)
            "@type": "MessageCard",
            "@context": "https://schema.org/extensions",
            "summary": title,
            "themeColor": "0078D4",
            "title": title,
        }
        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                response = await client.post(self.webhook_url, json=payload)
        except httpx.HTTPError as exc:
            log.error("notification.webhook_error", error=str(exc))
            return False

        if response.is_success:
            log.info("notification.webhook_sent", title=title)
            return True

        log.warning(
            "notification.webhook_failed",
            status=response.status_code,
            response=response.text[:200],
        )
        return False

    # ------------------------------------------------------------------
    # Message formatting helpers
    # ------------------------------------------------------------------

    def _format_subject(
        self, transition: TransitionRecord, case: DataSubjectRequest | BreachIncident
    ) -> str:
        if isinstance(case, BreachIncident):
            return f"Breach incident {transition.new_status}: {case.title}"
        return f"DSR {case.request_type} {transition.new_status}: {case.id}"

    def _format_body(
        self, transition: TransitionRecord, case: DataSubjectRequest | BreachIncident
    ) -> str:
        if isinstance(case, BreachIncident):
            return f"""
Breach incident status changed:

Incident ID: {case.id}
Title: {case.title}
Severity: {case.severity}
Status: {transition.old_status} -> {transition.new_status}
Detected at: {case.detected_at.isoformat()}

Changed by: {transition.actor}
Changed at: {transition.timestamp.isoformat()}
            """.strip()

        return f"""
Data-subject request reached a final status:

Request ID: {case.id}
Type: {case.request_type}
Priority: {case.priority}
Status: {transition.old_status} -> {transition.new_status}
SLA deadline: {case.sla_deadline.isoformat()}
{f"Reason: {case.reason}" if case.reason else ""}

Changed by: {transition.actor}
Changed at: {transition.timestamp.isoformat()}
        """.strip()
