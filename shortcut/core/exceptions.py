"""
Custom Exceptions

This module defines the domain exceptions raised by the service layer.
Every exception carries the HTTP status it maps to and a machine-readable
``code`` so the web client can react without parsing messages (for example,
routing the user to the pricing page on ``premium_required``).

Taxonomy:
- Validation errors (400)
- Authentication / authorization errors (401, 403)
- Upsell errors: quota and feature gate denials (403, ``upgrade_required``)
- Not found (404), conflict (409), expired resource (410)
- Upstream provider errors (502)
- Database errors (500)
"""

from typing import Any, Optional


class ShortcutError(Exception):
    """Base exception for the URL shortener service."""

    status_code = 500
    code = "internal_error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def extra(self) -> dict[str, Any]:
        """Additional fields merged into the JSON error body."""
        return {}


# Validation


class ValidationError(ShortcutError):
    status_code = 400
    code = "validation_error"


class InvalidURLError(ValidationError):
    """Raised when URL validation fails."""

    code = "invalid_url"

    def __init__(self, url: str, reason: str = "Invalid URL format"):
        self.url = url
        self.reason = reason
        super().__init__(f"{reason}: {url}")


class InvalidAliasError(ValidationError):
    code = "invalid_alias"

    def __init__(self, alias: str, reason: str):
        self.alias = alias
        super().__init__(f"{reason}: '{alias}'")


class HumanVerificationError(ValidationError):
    """Raised when an anonymous request fails the human-verification check."""

    code = "human_verification_failed"

    def __init__(self, message: str = "Human verification failed"):
        super().__init__(message)


class WebhookSignatureError(ValidationError):
    code = "invalid_signature"

    def __init__(self, reason: str):
        super().__init__(f"Webhook signature verification failed: {reason}")


# Authentication / authorization


class AuthenticationError(ShortcutError):
    status_code = 401
    code = "not_authenticated"

    def __init__(self, message: str = "Not authorized"):
        super().__init__(message)


class PasswordRequiredError(ShortcutError):
    """The link is password protected and no password was supplied."""

    status_code = 401
    code = "password_required"

    def __init__(self, short_code: str):
        self.short_code = short_code
        super().__init__(f"Link '{short_code}' is password protected")

    def extra(self) -> dict[str, Any]:
        return {"requires_password": True}


class InvalidLinkPasswordError(ShortcutError):
    status_code = 401
    code = "invalid_password"

    def __init__(self, short_code: str):
        self.short_code = short_code
        super().__init__(f"Incorrect password for link '{short_code}'")


class NotLinkOwnerError(ShortcutError):
    status_code = 403
    code = "forbidden"

    def __init__(self, link_id: int):
        self.link_id = link_id
        super().__init__(f"Link {link_id} does not belong to this account")


# Upsell


class UpgradeRequiredError(ShortcutError):
    """Denials that the client should route to the upgrade flow."""

    status_code = 403
    code = "upgrade_required"

    def extra(self) -> dict[str, Any]:
        return {"upgrade_required": True}


class PremiumRequiredError(UpgradeRequiredError):
    """Raised when one or more requested capabilities are not in the requester's tier."""

    code = "premium_required"

    def __init__(self, denials: list):
        self.denials = denials
        names = ", ".join(d.capability.value for d in denials)
        super().__init__(f"Premium subscription required for: {names}")

    def extra(self) -> dict[str, Any]:
        return {
            "upgrade_required": True,
            "features": [
                {"feature": d.capability.value, "reason": d.reason}
                for d in self.denials
            ],
        }


class QuotaExceededError(UpgradeRequiredError):
    code = "quota_exceeded"

    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(
            f"Link limit reached ({limit}). Upgrade your plan to create more links"
        )

    def extra(self) -> dict[str, Any]:
        return {"upgrade_required": True, "limit": self.limit}


# Lookup / state


class NotFoundError(ShortcutError):
    status_code = 404
    code = "not_found"


class ShortCodeNotFoundError(NotFoundError):
    """Raised when a short code is not found in the database."""

    def __init__(self, short_code: str):
        self.short_code = short_code
        super().__init__(f"Short code '{short_code}' not found")


class LinkNotFoundError(NotFoundError):
    def __init__(self, link_id: int):
        self.link_id = link_id
        super().__init__(f"Link {link_id} not found")


class AccountNotFoundError(NotFoundError):
    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Account '{account_id}' not found")


class ConflictError(ShortcutError):
    status_code = 409
    code = "conflict"


class AliasTakenError(ConflictError):
    code = "alias_taken"

    def __init__(self, alias: str):
        self.alias = alias
        super().__init__(f"Alias '{alias}' is already in use")


class EmailTakenError(ConflictError):
    code = "email_taken"

    def __init__(self, email: str):
        self.email = email
        super().__init__(f"An account with email '{email}' already exists")


class LinkExpiredError(ShortcutError):
    status_code = 410
    code = "link_expired"

    def __init__(self, short_code: str):
        self.short_code = short_code
        super().__init__(f"Link '{short_code}' has expired")


# Upstream providers


class UpstreamServiceError(ShortcutError):
    status_code = 502
    code = "upstream_error"


class BillingProviderError(UpstreamServiceError):
    code = "billing_provider_error"

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        self.original_error = original_error
        super().__init__(f"Billing provider error: {message}")


class VerificationProviderError(UpstreamServiceError):
    code = "verification_provider_error"

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        self.original_error = original_error
        super().__init__(f"Verification provider error: {message}")


# Storage


class DatabaseError(ShortcutError):
    """Raised when database operations fail."""

    code = "database_error"

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        self.original_error = original_error
        super().__init__(f"Database error: {message}")
