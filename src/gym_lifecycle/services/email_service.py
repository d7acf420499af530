"""
Lifecycle email delivery.

Emails go out through the Resend HTTP API. Every template send is gated by the
``email_events`` idempotency ledger, and failures are kept in
``email_failures`` until a later attempt for the same key succeeds.
"""
import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, Optional

import requests
from sqlalchemy.ext.asyncio import AsyncSession
from supabase import Client, create_client

from gym_lifecycle.core.clock import BusinessClock
from gym_lifecycle.core.config import settings
from gym_lifecycle.crud.crud_email import email_event, email_failure
from gym_lifecycle.schemas.email import EmailResult, UserProfile
from gym_lifecycle.schemas.enums import EmailEventType

logger = logging.getLogger(__name__)

TRANSIENT_STATUS_CODES = (429, 500, 502, 503, 504)
MAX_RETRY_DELAY_SECONDS = 10.0


class EmailDeliveryError(Exception):
    """A send attempt failed at the transport level."""

    def __init__(self, message: str, status_code: Optional[int] = None, transient: Optional[bool] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self._transient = transient

    @property
    def transient(self) -> bool:
        """Rate limits, server errors, timeouts and network failures are worth retrying."""
        if self._transient is not None:
            return self._transient
        if self.status_code in TRANSIENT_STATUS_CODES:
            return True
        text = self.message.lower()
        return "timeout" in text or "network" in text


def retry_delay(attempt: int) -> float:
    """Backoff before retrying after ``attempt`` (1-based): 1s, 2s, 4s ... capped at 10s."""
    return min(1.0 * 2 ** (attempt - 1), MAX_RETRY_DELAY_SECONDS)


class ResendTransport:
    """Minimal Resend client over ``requests``."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        from_email: Optional[str] = None,
        reply_to: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.RESEND_API_KEY
        self.api_url = api_url or settings.RESEND_API_URL
        self.from_email = from_email or settings.EMAIL_FROM
        self.reply_to = reply_to or settings.EMAIL_REPLY_TO
        self.timeout = timeout or settings.EMAIL_TIMEOUT_SECONDS

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def send(self, to: str, subject: str, html: str) -> Optional[str]:
        """Send one email and return the provider's message id."""
        try:
            response = requests.post(
                self.api_url,
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={
                    "from": self.from_email,
                    "to": [to],
                    "subject": subject,
                    "html": html,
                    "reply_to": self.reply_to,
                },
                timeout=self.timeout,
            )
        except requests.Timeout as e:
            raise EmailDeliveryError(f"Request timeout: {e}", transient=True)
        except requests.RequestException as e:
            raise EmailDeliveryError(f"Network error: {e}", transient=True)

        if response.status_code >= 400:
            try:
                message = response.json().get("message") or response.text
            except ValueError:
                message = response.text
            raise EmailDeliveryError(message or f"HTTP {response.status_code}", status_code=response.status_code)

        try:
            return response.json().get("id")
        except ValueError:
            return None


class SupabaseUserDirectory:
    """Resolves member names and addresses from Supabase auth and the ``profiles`` table."""

    def __init__(self, client: Optional[Client] = None):
        self._client = client

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_KEY)
        return self._client

    def _lookup(self, user_id: str) -> Optional[UserProfile]:
        response = self.client.auth.admin.get_user_by_id(user_id)
        user = getattr(response, "user", None)
        if not user:
            return None
        full_name = None
        try:
            profile = self.client.table("profiles").select("full_name").eq("id", user_id).limit(1).execute()
            if profile.data:
                full_name = profile.data[0].get("full_name")
        except Exception as e:
            logger.warning(f"Profile lookup failed for user {user_id}: {str(e)}")
        email = user.email or ""
        return UserProfile(full_name=full_name or email.split("@")[0] or "Member", email=email)

    async def get_profile(self, user_id: str) -> Optional[UserProfile]:
        try:
            return await asyncio.to_thread(self._lookup, user_id)
        except Exception as e:
            logger.error(f"Failed to fetch user profile for {user_id}: {str(e)}")
            return None


def _layout(title: str, greeting: str, paragraphs: list[str], cta: str) -> str:
    body = "".join(f'<p style="color:#4b5563;font-size:16px;line-height:1.6;">{p}</p>' for p in paragraphs)
    return (
        "<!DOCTYPE html><html><head><meta charset=\"utf-8\">"
        f"<title>{title}</title></head>"
        "<body style=\"font-family:Arial,sans-serif;background-color:#f5f5f5;\">"
        "<div style=\"max-width:600px;margin:0 auto;background:#ffffff;border-radius:8px;\">"
        "<h1 style=\"background:#dc2626;color:#ffffff;padding:32px;margin:0;text-align:center;\">THE 24 FITNESS GYM</h1>"
        f"<div style=\"padding:32px;\"><h2>{title}</h2><p>{greeting}</p>{body}"
        f"<p style=\"text-align:center;\"><a href=\"https://www.the24fitness.co.in/dashboard\">{cta}</a></p>"
        "<p style=\"color:#6b7280;font-size:14px;\">If you have any questions, reply to this email.</p></div>"
        f"<p style=\"color:#9ca3af;font-size:12px;text-align:center;\">The 24 Fitness Gym | {settings.EMAIL_REPLY_TO}</p>"
        "</div></body></html>"
    )


class EmailDispatcher:
    """Sends lifecycle emails at most once per (user, membership, event)."""

    def __init__(
        self,
        db: AsyncSession,
        clock: Optional[BusinessClock] = None,
        transport: Optional[ResendTransport] = None,
        directory: Optional[SupabaseUserDirectory] = None,
        max_retries: Optional[int] = None,
        fail_open: Optional[bool] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.db = db
        self.clock = clock or BusinessClock()
        self.transport = transport or ResendTransport()
        self.directory = directory or SupabaseUserDirectory()
        self.max_retries = max_retries or settings.EMAIL_MAX_RETRIES
        self.fail_open = settings.EMAIL_IDEMPOTENCY_FAIL_OPEN if fail_open is None else fail_open
        self._sleep = sleep
        self.fail_open_count = 0

    def _format_date(self, value: datetime) -> str:
        local = self.clock.to_local(value)
        return f"{local.day} {local.strftime('%B %Y')}"

    async def has_been_sent(self, user_id: str, membership_id: Optional[int], event_type: EmailEventType) -> bool:
        """Ledger lookup. Errors count as "not sent" when failing open."""
        try:
            return await email_event.has_event(
                self.db, user_id=user_id, membership_id=membership_id, event_type=event_type.value
            )
        except Exception as e:
            await self.db.rollback()
            self.fail_open_count += 1
            logger.error(
                f"Idempotency check failed for {event_type.value} (user={user_id}, membership={membership_id}): {str(e)}"
            )
            if self.fail_open:
                return False
            raise

    async def deliver(self, to: str, subject: str, html: str) -> EmailResult:
        """Send through the transport, retrying transient failures with exponential backoff."""
        if not self.transport.configured:
            logger.error(f"Email service not configured, not sending '{subject}' to {to}")
            return EmailResult(success=False, error="Email service not configured")

        last_error: Optional[str] = None
        for attempt in range(1, self.max_retries + 1):
            try:
                email_id = await asyncio.to_thread(self.transport.send, to, subject, html)
                logger.info(f"Email sent to {to}: '{subject}' (id={email_id}, attempt={attempt})")
                return EmailResult(success=True, email_id=email_id, attempts=attempt)
            except EmailDeliveryError as e:
                last_error = e.message
                if e.transient and attempt < self.max_retries:
                    delay = retry_delay(attempt)
                    logger.warning(
                        f"Transient email error (attempt {attempt}/{self.max_retries}), retrying in {delay}s: {e.message}"
                    )
                    await self._sleep(delay)
                    continue
                logger.error(f"Email to {to} failed: {e.message}")
                return EmailResult(success=False, error=last_error, attempts=attempt)

        return EmailResult(
            success=False, error=last_error or "Failed to send email after retries", attempts=self.max_retries
        )

    async def _record_sent(
        self, user_id: str, membership_id: Optional[int], event_type: EmailEventType, email_address: str
    ) -> None:
        now = self.clock.now()
        try:
            await email_event.record(
                self.db,
                user_id=user_id,
                membership_id=membership_id,
                event_type=event_type.value,
                email_address=email_address,
                sent_at=now,
            )
            await email_failure.resolve(
                self.db,
                user_id=user_id,
                membership_id=membership_id,
                event_type=event_type.value,
                resolved_at=now,
            )
        except Exception as e:
            # the email is already out, only the bookkeeping is lost
            await self.db.rollback()
            logger.error(f"Failed to record email event {event_type.value} for user {user_id}: {str(e)}")

    async def _record_failure(
        self,
        user_id: str,
        membership_id: Optional[int],
        event_type: EmailEventType,
        email_address: Optional[str],
        error: str,
        retry_count: int,
    ) -> None:
        try:
            await email_failure.record(
                self.db,
                user_id=user_id,
                membership_id=membership_id,
                event_type=event_type.value,
                email_address=email_address,
                error_message=error,
                retry_count=retry_count,
                attempted_at=self.clock.now(),
            )
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Failed to log email failure for user {user_id}: {str(e)}")

    async def _send_event(
        self,
        event_type: EmailEventType,
        user_id: str,
        membership_id: Optional[int],
        subject: str,
        build_html: Callable[[str], str],
    ) -> EmailResult:
        try:
            if await self.has_been_sent(user_id, membership_id, event_type):
                logger.info(f"{event_type.value} already sent for membership {membership_id}, skipping")
                return EmailResult(success=True, skipped=True)
        except Exception as e:
            return EmailResult(success=False, error=f"Idempotency check failed: {str(e)}")

        profile = await self.directory.get_profile(user_id)
        if not profile or not profile.email:
            return EmailResult(success=False, error="User email not found")

        result = await self.deliver(profile.email, subject, build_html(profile.full_name))
        if result.success:
            await self._record_sent(user_id, membership_id, event_type, profile.email)
        else:
            await self._record_failure(
                user_id,
                membership_id,
                event_type,
                profile.email,
                result.error or "Unknown error",
                retry_count=max(result.attempts - 1, 0),
            )
        return result

    async def send_plan_expiry_reminder(
        self, user_id: str, membership_id: int, plan_name: str, expiry_date: datetime
    ) -> EmailResult:
        when = self._format_date(expiry_date)
        return await self._send_event(
            EmailEventType.PLAN_EXPIRY_REMINDER,
            user_id,
            membership_id,
            f"Your {plan_name} Membership Expires Soon - Renew Now",
            lambda name: _layout(
                "Membership Expiry Reminder",
                f"Hello {name},",
                [
                    f"This is a friendly reminder that your <strong>{plan_name}</strong> membership will expire on <strong>{when}</strong>.",
                    "To continue enjoying all the benefits of your membership, please renew before the expiry date.",
                ],
                "Renew Plan",
            ),
        )

    async def send_plan_expiry_day(
        self, user_id: str, membership_id: int, plan_name: str, expiry_date: datetime
    ) -> EmailResult:
        when = self._format_date(expiry_date)
        days = settings.GRACE_PERIOD_DAYS
        return await self._send_event(
            EmailEventType.PLAN_EXPIRY_DAY,
            user_id,
            membership_id,
            f"Your {plan_name} Membership Has Expired - Renew Within {days} Days",
            lambda name: _layout(
                "Your Membership Has Expired",
                f"Hello {name},",
                [
                    f"Your <strong>{plan_name}</strong> membership expires today, <strong>{when}</strong>.",
                    f"You have a {days}-day grace period to renew and keep your membership.",
                ],
                "Renew Now",
            ),
        )

    async def send_grace_period_start(
        self, user_id: str, membership_id: int, plan_name: str, grace_period_end: datetime
    ) -> EmailResult:
        when = self._format_date(grace_period_end)
        days = settings.GRACE_PERIOD_DAYS
        return await self._send_event(
            EmailEventType.GRACE_PERIOD_START,
            user_id,
            membership_id,
            f"Renew Your {plan_name} Membership - {days} Days Grace Period Started",
            lambda name: _layout(
                "Grace Period Started",
                f"Hello {name},",
                [
                    f"Your <strong>{plan_name}</strong> membership has ended and a {days}-day grace period has started.",
                    f"Renew before <strong>{when}</strong> to keep your membership. After that date it will be removed.",
                ],
                "Renew Now",
            ),
        )

    async def send_grace_period_end(
        self, user_id: str, membership_id: int, plan_name: str, grace_period_end: datetime
    ) -> EmailResult:
        when = self._format_date(grace_period_end)
        return await self._send_event(
            EmailEventType.GRACE_PERIOD_END,
            user_id,
            membership_id,
            f"Final Notice: Your {plan_name} Membership Grace Period Ends Today",
            lambda name: _layout(
                "Grace Period Ends Today",
                f"Hello {name},",
                [
                    f"The grace period of your <strong>{plan_name}</strong> membership ends today, <strong>{when}</strong>.",
                    "Renew today to avoid losing your membership.",
                ],
                "Renew Today",
            ),
        )
