"""
notifier.py — Outbound email / SMS dispatch.

Two channels, each optional:
  - Email via SMTP (stdlib smtplib, run in a worker thread)
  - SMS via the Twilio REST API (httpx)

Graceful degradation: a channel whose credentials are missing is simply
disabled. send_email() / send_sms() then return False with a logged
warning, exactly as they do when the provider rejects a message. Neither
method ever raises, so one contact's failure can't abort the fan-out to
the next.

Configuration is read once at startup into a NotifierConfig and passed
to the NotificationDispatcher stored on app.state. Routes obtain it via
the get_dispatcher() dependency, which tests override with fakes.
"""

import asyncio
import html
import logging
import re
import smtplib
import ssl
from dataclasses import dataclass
from datetime import datetime, timezone
from email.message import EmailMessage
from typing import Optional, Protocol

import httpx
from fastapi import Request

from rapid_response.core.config import Settings, settings

logger = logging.getLogger(__name__)

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"

# Twilio error codes returned when a trial account targets an unverified number.
_TWILIO_UNVERIFIED_CODES = {21608, 21211}

_TAG_RE = re.compile(r"<[^>]*>")


@dataclass(frozen=True)
class NotifierConfig:
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_pass: str = ""
    from_name: str = "Rapid Response Hub"
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_phone_number: str = ""
    timeout_seconds: float = 10.0

    @classmethod
    def from_settings(cls, s: Settings) -> "NotifierConfig":
        return cls(
            smtp_host=s.smtp_host,
            smtp_port=s.smtp_port,
            smtp_user=s.smtp_user,
            smtp_pass=s.smtp_pass,
            from_name=s.smtp_from_name,
            twilio_account_sid=s.twilio_account_sid,
            twilio_auth_token=s.twilio_auth_token,
            twilio_phone_number=s.twilio_phone_number,
            timeout_seconds=s.notification_timeout_seconds,
        )

    @property
    def email_enabled(self) -> bool:
        return bool(self.smtp_user and self.smtp_pass)

    @property
    def sms_enabled(self) -> bool:
        return bool(self.twilio_account_sid and self.twilio_auth_token and self.twilio_phone_number)


# ── Providers ─────────────────────────────────────────────────────────────────

class EmailProvider(Protocol):
    async def send(self, to: str, subject: str, html_body: str, text_body: str) -> None: ...


class SMSProvider(Protocol):
    async def send(self, to: str, body: str) -> None: ...


class SMTPEmailProvider:
    """Sends one message per SMTP connection. SSL on port 465, STARTTLS otherwise."""

    def __init__(self, config: NotifierConfig) -> None:
        self.config = config

    async def send(self, to: str, subject: str, html_body: str, text_body: str) -> None:
        msg = EmailMessage()
        msg["From"] = f'"{self.config.from_name}" <{self.config.smtp_user}>'
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content(text_body)
        msg.add_alternative(html_body, subtype="html")
        # smtplib blocks, so run it off the event loop.
        await asyncio.to_thread(self._deliver, msg)

    def _deliver(self, msg: EmailMessage) -> None:
        cfg = self.config
        context = ssl.create_default_context()
        if cfg.smtp_port == 465:
            with smtplib.SMTP_SSL(cfg.smtp_host, cfg.smtp_port, timeout=cfg.timeout_seconds, context=context) as smtp:
                smtp.login(cfg.smtp_user, cfg.smtp_pass)
                smtp.send_message(msg)
        else:
            with smtplib.SMTP(cfg.smtp_host, cfg.smtp_port, timeout=cfg.timeout_seconds) as smtp:
                smtp.starttls(context=context)
                smtp.login(cfg.smtp_user, cfg.smtp_pass)
                smtp.send_message(msg)


class TwilioSMSProvider:
    """Thin async wrapper around Twilio's Messages endpoint."""

    def __init__(self, config: NotifierConfig, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.config = config
        self._transport = transport

    async def send(self, to: str, body: str) -> None:
        cfg = self.config
        url = f"{TWILIO_API_BASE}/Accounts/{cfg.twilio_account_sid}/Messages.json"
        async with httpx.AsyncClient(
            timeout=cfg.timeout_seconds,
            auth=(cfg.twilio_account_sid, cfg.twilio_auth_token),
            transport=self._transport,
        ) as client:
            response = await client.post(
                url,
                data={"To": to, "From": cfg.twilio_phone_number, "Body": body},
            )
            response.raise_for_status()


# ── Dispatcher ────────────────────────────────────────────────────────────────

@dataclass
class DispatchResult:
    emails_sent: int = 0
    sms_sent: int = 0


class NotificationDispatcher:
    """
    Best-effort email / SMS sender used by the SOS workflow and incident
    updates. Providers can be injected; otherwise they are built from the
    config for every enabled channel.
    """

    def __init__(
        self,
        config: NotifierConfig,
        email_provider: Optional[EmailProvider] = None,
        sms_provider: Optional[SMSProvider] = None,
    ) -> None:
        self.config = config
        self.email_provider = email_provider or (SMTPEmailProvider(config) if config.email_enabled else None)
        self.sms_provider = sms_provider or (TwilioSMSProvider(config) if config.sms_enabled else None)

        if self.email_provider is None:
            logger.warning("SMTP not configured — email notifications will be skipped.")
        if self.sms_provider is None:
            logger.warning("Twilio not configured — SMS notifications will be skipped.")

    async def send_email(self, to: str, subject: str, html_body: str, text_body: Optional[str] = None) -> bool:
        if self.email_provider is None:
            logger.warning("Email not configured. Skipping email to %s", to)
            return False

        text = text_body or _TAG_RE.sub("", html_body)
        try:
            await asyncio.wait_for(
                self.email_provider.send(to, subject, html_body, text),
                timeout=self.config.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.error("Email to %s timed out after %.0fs", to, self.config.timeout_seconds)
            return False
        except Exception as exc:
            logger.error("Email send to %s failed: %s", to, exc)
            return False

        logger.info("Email sent to %s", to)
        return True

    async def send_sms(self, to: str, message: str) -> bool:
        if self.sms_provider is None:
            logger.warning("Twilio not configured. Skipping SMS to %s", to)
            return False

        try:
            await asyncio.wait_for(
                self.sms_provider.send(to, message),
                timeout=self.config.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.error("SMS to %s timed out after %.0fs", to, self.config.timeout_seconds)
            return False
        except httpx.HTTPStatusError as exc:
            code = _twilio_error_code(exc.response)
            logger.error(
                "SMS send to %s rejected: HTTP %s (Twilio code %s)",
                to,
                exc.response.status_code,
                code,
            )
            if code in _TWILIO_UNVERIFIED_CODES:
                logger.error(
                    "Trial account: %s is not a verified caller ID. "
                    "Add it in the Twilio console under Verified Caller IDs.",
                    to,
                )
            return False
        except Exception as exc:
            logger.error("SMS send to %s failed: %s", to, exc)
            return False

        logger.info("SMS sent to %s", to)
        return True

    async def send_sos_alerts(
        self,
        user_name: str,
        user_phone: Optional[str],
        location: dict,
        contacts: list[dict],
        alert_type: str = "emergency",
    ) -> DispatchResult:
        """
        Fan an SOS out to every contact: SMS when they have a phone, email
        when they have an address. Contacts are handled concurrently and
        independently.
        """
        sms_body = build_sos_sms(user_name, location)
        subject = f"EMERGENCY: {user_name} needs help!"
        email_html = build_sos_email(user_name, user_phone, location, alert_type)

        async def _notify(contact: dict) -> tuple[bool, bool]:
            sms_ok = email_ok = False
            if contact.get("phone"):
                sms_ok = await self.send_sms(contact["phone"], sms_body)
            if contact.get("email"):
                email_ok = await self.send_email(contact["email"], subject, email_html)
            return sms_ok, email_ok

        outcomes = await asyncio.gather(*(_notify(c) for c in contacts))

        result = DispatchResult()
        for sms_ok, email_ok in outcomes:
            result.sms_sent += int(sms_ok)
            result.emails_sent += int(email_ok)
        return result

    async def send_incident_update(self, email: str, incident_title: str, status: str, update_message: str) -> bool:
        body = (
            "<h2>Incident Status Update</h2>"
            f"<p><strong>Incident:</strong> {html.escape(incident_title)}</p>"
            f"<p><strong>New Status:</strong> {html.escape(status)}</p>"
            f"<p>{html.escape(update_message)}</p>"
            '<p style="color: #666; font-size: 12px;">Rapid Response Hub</p>'
        )
        return await self.send_email(email, f"Incident Update: {incident_title}", body)

    async def send_welcome_email(self, email: str, name: str) -> bool:
        body = (
            '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
            '<h1 style="color: #1e40af;">Welcome to Rapid Response Hub!</h1>'
            f"<p>Hi {html.escape(name)},</p>"
            "<p>Thank you for joining Rapid Response Hub. You can now:</p>"
            "<ul>"
            "<li>Report emergencies and incidents in your area</li>"
            "<li>View real-time incident updates</li>"
            "<li>Set up emergency contacts for SOS alerts</li>"
            "<li>Help verify community-reported incidents</li>"
            "</ul>"
            "<p>Stay safe and help keep your community safe!</p>"
            '<p style="color: #666;">The Rapid Response Team</p>'
            "</div>"
        )
        return await self.send_email(email, "Welcome to Rapid Response Hub", body)


# ── Message templates ─────────────────────────────────────────────────────────

def build_sos_sms(user_name: str, location: dict) -> str:
    # Kept short: trial accounts prepend a banner and the limit is 160 chars.
    return f"SOS! {user_name} needs help at {location['lat']:.4f},{location['lng']:.4f}"


def build_sos_email(user_name: str, user_phone: Optional[str], location: dict, alert_type: str) -> str:
    lat, lng = location["lat"], location["lng"]
    location_text = location.get("address") or f"{lat}, {lng}"
    maps_link = f"https://www.google.com/maps?q={lat},{lng}"
    name = html.escape(user_name)
    phone_line = f"<p><strong>Contact:</strong> {html.escape(user_phone)}</p>" if user_phone else ""
    sent_at = datetime.now(tz=timezone.utc).strftime("%Y-%m-%d %H:%M UTC")

    return f"""
      <div style="font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto;">
        <h1 style="color: #c00;">EMERGENCY SOS ALERT</h1>
        <div style="background: #fee; border-left: 4px solid #c00; padding: 15px; margin: 20px 0;">
          <h2>Immediate Attention Required</h2>
          <p><strong>{name}</strong> has triggered an <strong>{html.escape(alert_type)}</strong>
             SOS alert and may need immediate assistance.</p>
        </div>
        <div style="background: #f5f5f5; padding: 15px; border-radius: 5px;">
          <h3>Location Details</h3>
          <p><strong>Address:</strong> {html.escape(location_text)}</p>
          <p><strong>Coordinates:</strong> {lat}, {lng}</p>
          {phone_line}
        </div>
        <p><a href="{maps_link}">View Location on Google Maps</a></p>
        <p style="margin-top: 30px; padding-top: 20px; border-top: 1px solid #ddd; color: #666;">
          <strong>What to do:</strong><br>
          1. Try to contact {name} immediately<br>
          2. If you cannot reach them, call emergency services<br>
          3. Share the location with first responders if needed
        </p>
        <p style="color: #999; font-size: 12px;">
          This alert was sent from Rapid Response Hub Emergency System.<br>
          Time: {sent_at}
        </p>
      </div>
    """


def _twilio_error_code(response: httpx.Response) -> Optional[int]:
    try:
        data = response.json()
    except ValueError:
        return None
    return data.get("code") if isinstance(data, dict) else None


# ── FastAPI dependency ────────────────────────────────────────────────────────

def get_dispatcher(request: Request) -> NotificationDispatcher:
    """Return the dispatcher created at startup (built lazily if lifespan didn't run)."""
    dispatcher = getattr(request.app.state, "dispatcher", None)
    if dispatcher is None:
        dispatcher = NotificationDispatcher(NotifierConfig.from_settings(settings))
        request.app.state.dispatcher = dispatcher
    return dispatcher
