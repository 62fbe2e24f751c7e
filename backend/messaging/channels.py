"""Outbound channel implementations for workflow steps.

Each channel owns everything specific to one transport: which step
content it needs, which contact address it sends to, how its stored
credentials are validated, and the provider HTTP call itself. The
engine only talks to the shared ``deliver()`` entry point, which
bounds the send with a timeout, turns every exception into a failed
``SendResult`` and records successful sends in the conversation
history.
"""

import asyncio
import base64
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from email.header import Header
from email.mime.text import MIMEText
from typing import Any, Optional

import httpx
import structlog

from app.config import Settings, get_settings
from core.constants import GMAIL_SERVICE, WHATSAPP_SERVICE, Channel, TemplateStatus
from messaging.variables import ContactData, personalize, render, resolve_variables

logger = structlog.get_logger(__name__)


# ─── Data Types ────────────────────────────────────────────────

@dataclass(frozen=True)
class TemplateData:
    """WhatsApp template as read at send time."""
    id: str
    name: str
    body: str = ""
    language: str = "en_US"
    status: str = TemplateStatus.PENDING.value

    @property
    def is_approved(self) -> bool:
        return (self.status or "").lower() == TemplateStatus.APPROVED.value

    @classmethod
    def from_model(cls, template) -> "TemplateData":
        return cls(
            id=template.id,
            name=template.name,
            body=template.body or "",
            language=template.language or "en_US",
            status=template.status or TemplateStatus.PENDING.value,
        )


@dataclass(frozen=True)
class StepDefinition:
    """Snapshot of a workflow step, including its resolved template."""
    id: str
    workflow_id: str
    step_order: int
    delay_days: int = 0
    send_time: Optional[str] = None
    channel: str = Channel.WHATSAPP.value
    template: Optional[TemplateData] = None
    template_name: Optional[str] = None
    email_subject: Optional[str] = None
    email_body: Optional[str] = None
    variable_mappings: list[dict] = field(default_factory=list)

    @classmethod
    def from_model(cls, step, template=None) -> "StepDefinition":
        """Build from a ``WorkflowStep`` row and its optional template row."""
        return cls(
            id=step.id,
            workflow_id=step.workflow_id,
            step_order=step.step_order,
            delay_days=step.delay_days or 0,
            send_time=step.send_time,
            channel=step.channel or Channel.WHATSAPP.value,
            template=TemplateData.from_model(template) if template is not None else None,
            template_name=step.template_name,
            email_subject=step.email_subject,
            email_body=step.email_body,
            variable_mappings=list(step.variable_mappings or []),
        )


@dataclass
class OutboundMessage:
    """Personalized content ready to hand to a provider."""
    recipient: str
    text: str
    subject: Optional[str] = None
    template: Optional[TemplateData] = None
    variables: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class SendResult:
    """Normalized outcome of one provider send."""
    success: bool
    provider_message_id: Optional[str] = None
    error: Optional[str] = None
    # Refreshed credentials the caller should persist (OAuth token refresh)
    credentials_update: Optional[dict] = None

    @classmethod
    def ok(cls, provider_message_id: str, credentials_update: Optional[dict] = None) -> "SendResult":
        return cls(
            success=True,
            provider_message_id=provider_message_id,
            credentials_update=credentials_update,
        )

    @classmethod
    def failure(cls, error: str, credentials_update: Optional[dict] = None) -> "SendResult":
        return cls(success=False, error=error, credentials_update=credentials_update)


# ─── Base Channel ──────────────────────────────────────────────

class BaseChannel(ABC):
    """Abstract base for outbound workflow channels."""

    channel_type: Channel
    service_name: str
    message_type: str = "text"
    provider_id_key: str = "provider_message_id"

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
    ):
        self.settings = settings or get_settings()
        self._transport = transport
        self.timeout = timeout if timeout is not None else self.settings.CHANNEL_SEND_TIMEOUT

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    @abstractmethod
    def check_content(self, step: StepDefinition) -> Optional[str]:
        """Return a reason when the step's content cannot be sent as-is."""
        ...

    @abstractmethod
    def recipient(self, contact: ContactData) -> Optional[str]:
        """Return the contact's address on this channel, if any."""
        ...

    @abstractmethod
    def missing_recipient_error(self) -> str:
        ...

    @abstractmethod
    def check_credentials(self, credentials: Optional[dict]) -> Optional[str]:
        """Return a reason when the stored credentials are unusable."""
        ...

    @abstractmethod
    def prepare(self, step: StepDefinition, contact: ContactData) -> OutboundMessage:
        """Resolve merge variables and build the outbound message."""
        ...

    @abstractmethod
    async def send(self, message: OutboundMessage, credentials: dict) -> SendResult:
        """Perform the provider call. May raise; ``deliver`` normalizes."""
        ...

    async def deliver(
        self,
        *,
        organization_id: str,
        step: StepDefinition,
        contact: ContactData,
        credentials: dict,
        history=None,
        metadata: Optional[dict] = None,
    ) -> SendResult:
        """Send one step to one contact and return a normalized result.

        Never raises. Timeouts and transport errors come back as failed
        results so the caller can apply its retry policy. On success the
        message is appended to the conversation history when ``history``
        is given; history failures do not change the result.
        """
        log = logger.bind(
            channel=self.channel_type.value,
            organization_id=organization_id,
            contact_id=contact.id,
        )

        try:
            message = self.prepare(step, contact)
            result = await asyncio.wait_for(
                self.send(message, credentials),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            result = SendResult.failure(
                f"{self.channel_type.value} send timed out after {self.timeout:g}s"
            )
        except httpx.HTTPError as e:
            result = SendResult.failure(f"{self.channel_type.value} transport error: {e}")
        except Exception as e:
            log.error("channel_send_exception", error=str(e), exc_info=True)
            result = SendResult.failure(str(e) or type(e).__name__)

        if not result.success:
            log.warning("channel_send_failed", error=result.error)
            return result

        log.info("channel_send_ok", provider_message_id=result.provider_message_id)

        if history is not None:
            record_meta = dict(message.metadata)
            record_meta[self.provider_id_key] = result.provider_message_id
            record_meta.update(metadata or {})
            await history.record(
                organization_id=organization_id,
                contact=contact,
                platform=self.channel_type.value,
                address=message.recipient,
                text=message.text,
                provider_message_id=result.provider_message_id,
                message_type=self.message_type,
                metadata=record_meta,
            )

        return result


# ─── WhatsApp Channel ──────────────────────────────────────────

class WhatsAppChannel(BaseChannel):
    """Send approved templates through the WhatsApp Cloud (Meta Graph) API.

    Credentials:
        phone_id (or phone_number_id), access_token
    """

    channel_type = Channel.WHATSAPP
    service_name = WHATSAPP_SERVICE
    message_type = "template"
    provider_id_key = "wamid"

    def check_content(self, step: StepDefinition) -> Optional[str]:
        if step.template is None:
            return "WhatsApp template not found for step"
        if not step.template.is_approved:
            return (
                f"Template '{step.template.name}' is not approved "
                f"(status: {step.template.status})"
            )
        return None

    def recipient(self, contact: ContactData) -> Optional[str]:
        return (contact.phone or "").strip() or None

    def missing_recipient_error(self) -> str:
        return "Contact has no phone number"

    @staticmethod
    def _phone_id(credentials: dict) -> str:
        return str(credentials.get("phone_id") or credentials.get("phone_number_id") or "").strip()

    def check_credentials(self, credentials: Optional[dict]) -> Optional[str]:
        if credentials is None:
            return "WhatsApp configuration not found"
        if not isinstance(credentials, dict):
            return "Invalid WhatsApp credentials format"
        access_token = str(credentials.get("access_token") or "").strip()
        if not self._phone_id(credentials) or not access_token:
            return "Missing WhatsApp credentials"
        return None

    def prepare(self, step: StepDefinition, contact: ContactData) -> OutboundMessage:
        template = step.template
        values = resolve_variables(template.body, contact, step.variable_mappings)
        text = personalize(template.body, values) or template.name
        return OutboundMessage(
            recipient=self.recipient(contact) or "",
            text=text,
            template=template,
            variables=values,
            metadata={
                "template_name": template.name,
                "template_language": template.language,
                "template_variables": values,
                "template_body": template.body,
            },
        )

    def build_payload(self, message: OutboundMessage) -> dict:
        """Build the Graph API ``messages`` request body."""
        template = message.template
        payload = {
            "messaging_product": "whatsapp",
            "to": message.recipient,
            "type": "template",
            "template": {
                "name": template.name,
                "language": {"code": template.language or "en_US"},
                "components": [],
            },
        }
        if message.variables:
            payload["template"]["components"].append({
                "type": "body",
                "parameters": [{"type": "text", "text": v} for v in message.variables],
            })
        return payload

    async def send(self, message: OutboundMessage, credentials: dict) -> SendResult:
        phone_id = self._phone_id(credentials)
        access_token = str(credentials.get("access_token") or "").strip()
        url = (
            f"{self.settings.WHATSAPP_GRAPH_API_URL.rstrip('/')}/"
            f"{self.settings.WHATSAPP_GRAPH_API_VERSION}/{phone_id}/messages"
        )

        async with self._client() as client:
            response = await client.post(
                url,
                json=self.build_payload(message),
                headers={"Authorization": f"Bearer {access_token}"},
            )

        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        if response.is_error:
            error = data.get("error") or {}
            reason = error.get("message") if isinstance(error, dict) else None
            return SendResult.failure(
                reason or f"Meta API request failed ({response.status_code})"
            )

        messages = data.get("messages") or []
        message_id = messages[0].get("id") if messages and isinstance(messages[0], dict) else None
        if not message_id:
            return SendResult.failure("Meta API did not return message ID")
        return SendResult.ok(message_id)


# ─── Email Channel ─────────────────────────────────────────────

class EmailChannel(BaseChannel):
    """Send HTML email through the Gmail API on behalf of the organization.

    Credentials:
        access_token, refresh_token, gmail_address

    A 401 from Gmail triggers one OAuth refresh using the stored
    refresh token; the refreshed credentials are returned on the
    result so the caller can persist them.
    """

    channel_type = Channel.EMAIL
    service_name = GMAIL_SERVICE
    message_type = "email"
    provider_id_key = "gmail_message_id"

    def check_content(self, step: StepDefinition) -> Optional[str]:
        if not (step.email_subject or "").strip() or not (step.email_body or "").strip():
            return "Email step is missing subject or body"
        return None

    def recipient(self, contact: ContactData) -> Optional[str]:
        return (contact.email or "").strip() or None

    def missing_recipient_error(self) -> str:
        return "Contact has no email address"

    def check_credentials(self, credentials: Optional[dict]) -> Optional[str]:
        if credentials is None:
            return "Gmail is not configured for this organization"
        if not isinstance(credentials, dict):
            return "Invalid Gmail credentials format"
        if not credentials.get("access_token"):
            return "No Gmail access token"
        return None

    def prepare(self, step: StepDefinition, contact: ContactData) -> OutboundMessage:
        subject = render(step.email_subject, contact, step.variable_mappings)
        body = render(step.email_body, contact, step.variable_mappings)
        return OutboundMessage(
            recipient=self.recipient(contact) or "",
            text=body,
            subject=subject,
            metadata={"subject": subject},
        )

    @staticmethod
    def encode_message(sender: str, message: OutboundMessage) -> str:
        """Encode an RFC 2822 message as unpadded base64url for Gmail."""
        mime = MIMEText(message.text, "html", "utf-8")
        if sender:
            mime["From"] = sender
        mime["To"] = message.recipient
        mime["Subject"] = Header(message.subject or "", "utf-8")
        return base64.urlsafe_b64encode(mime.as_bytes()).decode("ascii").rstrip("=")

    async def _post_message(self, client: httpx.AsyncClient, access_token: str, raw: str) -> httpx.Response:
        return await client.post(
            self.settings.GMAIL_API_URL,
            json={"raw": raw},
            headers={"Authorization": f"Bearer {access_token}"},
        )

    async def refresh_access_token(self, client: httpx.AsyncClient, refresh_token: str) -> Optional[str]:
        """Exchange a refresh token for a new access token."""
        if not self.settings.google_oauth_configured:
            logger.warning("gmail_refresh_unavailable", reason="google oauth client not configured")
            return None
        response = await client.post(
            self.settings.GOOGLE_TOKEN_URL,
            data={
                "client_id": self.settings.GOOGLE_CLIENT_ID,
                "client_secret": self.settings.GOOGLE_CLIENT_SECRET,
                "refresh_token": refresh_token,
                "grant_type": "refresh_token",
            },
        )
        if response.is_error:
            logger.warning("gmail_refresh_failed", status_code=response.status_code)
            return None
        try:
            return response.json().get("access_token") or None
        except ValueError:
            return None

    async def send(self, message: OutboundMessage, credentials: dict) -> SendResult:
        raw = self.encode_message(credentials.get("gmail_address") or "", message)
        access_token = credentials["access_token"]
        refresh_token = credentials.get("refresh_token")
        credentials_update = None

        async with self._client() as client:
            response = await self._post_message(client, access_token, raw)

            if response.status_code == 401 and refresh_token:
                new_token = await self.refresh_access_token(client, refresh_token)
                if not new_token:
                    return SendResult.failure("Gmail token expired and could not be refreshed")
                credentials_update = {**credentials, "access_token": new_token}
                response = await self._post_message(client, new_token, raw)

        if response.is_error:
            return SendResult.failure(
                f"Gmail API: {response.status_code} - {response.text}",
                credentials_update=credentials_update,
            )

        try:
            message_id = response.json().get("id")
        except ValueError:
            message_id = None
        if not message_id:
            return SendResult.failure(
                "Gmail API did not return message ID",
                credentials_update=credentials_update,
            )
        return SendResult.ok(message_id, credentials_update=credentials_update)
