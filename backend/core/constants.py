"""Constants and enums for the outreach sequencer."""

from enum import Enum


class EnrollmentStatus(str, Enum):
    """Lifecycle status of a workflow enrollment."""

    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"


class Channel(str, Enum):
    """Messaging transport a workflow step is sent through."""

    WHATSAPP = "whatsapp"
    EMAIL = "email"


class TemplateStatus(str, Enum):
    """Provider approval status of a WhatsApp message template."""

    APPROVED = "approved"
    PENDING = "pending"
    REJECTED = "rejected"
    PAUSED = "paused"
    DISABLED = "disabled"


class VariableSource(str, Enum):
    """Where an explicit variable mapping takes its value from."""

    PROPERTY = "property"
    MANUAL = "manual"


class OutcomeTag(str, Enum):
    """Per-enrollment result of one processing pass."""

    ADVANCED = "advanced"
    COMPLETED = "completed"
    RETRIED = "retried"
    PAUSED = "paused"
    FAILED = "failed"
    SKIPPED = "skipped"  # guarded write lost to a concurrent pass


class PassStatus(str, Enum):
    """Overall status of a processing pass."""

    IDLE = "idle"
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"
    ERROR = "error"


class ListFilterComparison(str, Enum):
    """Comparisons supported by dynamic contact list filters."""

    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"


# Integration service names used to look up organization credentials
WHATSAPP_SERVICE = "whatsapp"
GMAIL_SERVICE = "gmail"

# ─── Engine tunables ───

PROCESSING_BATCH_SIZE = 50
MAX_SEND_RETRIES = 3
RETRY_BACKOFF_MINUTES = (5, 15, 30)
ENROLLMENT_INSERT_CHUNK = 100
DETAILS_ENROLLMENT_LIMIT = 200

# Outcome tag -> HTTP status code returned by the processing endpoint
PASS_STATUS_CODES = {
    PassStatus.IDLE: 204,
    PassStatus.SUCCESS: 200,
    PassStatus.PARTIAL: 207,
    PassStatus.FAILED: 422,
    PassStatus.ERROR: 500,
}
