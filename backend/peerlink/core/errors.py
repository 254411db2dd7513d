"""Error Hierarchy — typed, categorized exceptions for all PeerLink failure modes.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - Lookup misses (404) are recovered locally — they are typed absences, never crashes
    - Verification failures (400) reject the inbound request; the activity is never trusted
    - Discovery/delivery failures (502) are logged by cycles and never halt a timer
    - to_response() produces REST envelope; to_event() produces event-stream envelope

Design Decisions:
    - Single hierarchy with PeerLinkError base: FastAPI global handler catches all (ADR: uniform error shape)
    - ErrorContext as dataclass: rich observability without coupling to logging framework
    - Kind bases (NotFoundError, DiscoveryError, VerificationError) let callers catch a whole
      family: the coordinator catches DiscoveryError, the inbox catches VerificationError
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from datetime import datetime, timezone


class ErrorSeverity(str, Enum):
    """Error severity for observability and client handling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories for routing and handling."""
    VALIDATION = "validation"
    RESOURCE_NOT_FOUND = "resource_not_found"
    DISCOVERY = "discovery"
    VERIFICATION = "verification"
    DELIVERY = "delivery"
    INTERNAL = "internal"
    TIMEOUT = "timeout"


@dataclass
class ErrorContext:
    """Rich context for error observability and debugging."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    domain: str | None = None
    target: str | None = None
    attempt: int | None = None
    debug_info: dict[str, Any] | None = None


class PeerLinkError(Exception):
    """Base exception for all PeerLink errors."""

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
        http_status: int = 500,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.http_status = http_status

    def to_response(self) -> dict:
        """Convert to standardized REST error response."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "category": self.category.value,
                "severity": self.severity.value,
                "timestamp": self.context.timestamp.isoformat(),
                "context": {
                    "domain": self.context.domain,
                    "target": self.context.target,
                    "attempt": self.context.attempt,
                },
            }
        }

    def to_event(self) -> dict:
        """Convert to event-stream error envelope."""
        return {
            "type": "error",
            "data": {
                "code": self.code,
                "message": self.message,
                "severity": self.severity.value,
                "recoverable": self.severity in (
                    ErrorSeverity.INFO, ErrorSeverity.WARNING,
                ),
                "domain": self.context.domain,
            },
        }


# ─── Lookup Misses (404) ────────────────────────────────────────

class NotFoundError(PeerLinkError):
    """Registry or identity lookup miss."""
    def __init__(
        self, resource_type: str, resource_id: str, context: ErrorContext | None = None,
    ):
        ctx = context or ErrorContext()
        ctx.domain = ctx.domain or resource_id
        super().__init__(
            f"{resource_type} '{resource_id}' not found",
            "RESOURCE_NOT_FOUND", ErrorCategory.RESOURCE_NOT_FOUND,
            ErrorSeverity.WARNING, ctx, 404,
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class InstanceNotFoundError(NotFoundError):
    """No PeerInstance registered for the domain."""
    def __init__(self, domain: str, context: ErrorContext | None = None):
        super().__init__("Instance", domain, context)


class IdentityNotFoundError(NotFoundError):
    """No identity (private or cached public key) held for the domain."""
    def __init__(self, domain: str, context: ErrorContext | None = None):
        super().__init__("Identity", domain, context)


# ─── Discovery Protocol Violations (502) ────────────────────────

class DiscoveryError(PeerLinkError):
    """Base for every discovery step failure — cycles skip the domain and continue."""
    def __init__(
        self, message: str, code: str, domain: str | None = None,
        context: ErrorContext | None = None,
    ):
        ctx = context or ErrorContext()
        ctx.domain = ctx.domain or domain
        super().__init__(
            message, code, ErrorCategory.DISCOVERY,
            ErrorSeverity.WARNING, ctx, 502,
        )


class DiscoveryFailedError(DiscoveryError):
    """WebFinger query failed at transport, status or JSON level."""
    def __init__(self, domain: str, reason: str, context: ErrorContext | None = None):
        super().__init__(
            f"Discovery of {domain} failed: {reason}",
            "DISCOVERY_FAILED", domain, context,
        )
        self.reason = reason


class InvalidSubjectError(DiscoveryError):
    """WebFinger subject differs from the queried resource."""
    def __init__(
        self, domain: str, expected: str, actual: object,
        context: ErrorContext | None = None,
    ):
        super().__init__(
            f"WebFinger subject mismatch for {domain}: expected {expected!r}, got {actual!r}",
            "INVALID_SUBJECT", domain, context,
        )
        self.expected = expected
        self.actual = actual


class MissingSelfLinkError(DiscoveryError):
    """WebFinger document has no activity+json self link."""
    def __init__(self, domain: str | None = None, context: ErrorContext | None = None):
        super().__init__(
            f"WebFinger document for {domain or 'peer'} has no self link",
            "MISSING_SELF_LINK", domain, context,
        )


class NoActorUrlError(DiscoveryError):
    """Self link present but carries no href."""
    def __init__(self, domain: str | None = None, context: ErrorContext | None = None):
        super().__init__(
            f"WebFinger self link for {domain or 'peer'} has no actor URL",
            "NO_ACTOR_URL", domain, context,
        )


class ActorFetchFailedError(DiscoveryError):
    """Actor document could not be fetched or parsed."""
    def __init__(self, actor_url: str, reason: str, context: ErrorContext | None = None):
        super().__init__(
            f"Fetching actor {actor_url} failed: {reason}",
            "ACTOR_FETCH_FAILED", None, context,
        )
        self.actor_url = actor_url
        self.reason = reason


# ─── Verification Failures (400) ────────────────────────────────

class VerificationError(PeerLinkError):
    """Base for inbound verification failures — request rejected as client error."""
    def __init__(self, message: str, code: str, context: ErrorContext | None = None):
        super().__init__(
            message, code, ErrorCategory.VERIFICATION,
            ErrorSeverity.WARNING, context, 400,
        )


class InvalidSignatureError(VerificationError):
    """Signature does not verify against the signer's public key."""
    def __init__(self, message: str = "Signature verification failed",
                 context: ErrorContext | None = None):
        super().__init__(message, "INVALID_SIGNATURE", context)


class InvalidSignatureHeaderError(InvalidSignatureError):
    """Signature header is absent or malformed."""
    def __init__(self, reason: str, context: ErrorContext | None = None):
        super().__init__(f"Invalid Signature header: {reason}", context)
        self.code = "INVALID_SIGNATURE_HEADER"


class PublicKeyFetchFailedError(VerificationError):
    """Remote actor's public key could not be fetched."""
    def __init__(self, key_id: str, reason: str, context: ErrorContext | None = None):
        super().__init__(
            f"Public key fetch for {key_id} failed: {reason}",
            "PUBLIC_KEY_FETCH_FAILED", context,
        )
        self.key_id = key_id
        self.reason = reason


# ─── Delivery Failures (502) ────────────────────────────────────

class DeliveryFailedError(PeerLinkError):
    """A single delivery attempt failed — retried by the federator, never fatal."""
    def __init__(
        self, target: str, reason: str, status_code: int | None = None,
        context: ErrorContext | None = None,
    ):
        ctx = context or ErrorContext()
        ctx.target = ctx.target or target
        super().__init__(
            f"Delivery to {target} failed: {reason}",
            "DELIVERY_FAILED", ErrorCategory.DELIVERY,
            ErrorSeverity.ERROR, ctx, 502,
        )
        self.target = target
        self.reason = reason
        self.status_code = status_code


class CoordinatorNotRunningError(PeerLinkError):
    """Network coordinator used before start() or after stop()."""
    def __init__(self, context: ErrorContext | None = None):
        super().__init__(
            "Network coordinator is not running",
            "COORDINATOR_NOT_RUNNING", ErrorCategory.INTERNAL,
            ErrorSeverity.CRITICAL, context, 503,
        )
