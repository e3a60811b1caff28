"""
Human Verification Service

Anonymous link creation must pass a human-verification challenge. The
challenge token produced by the web client is checked against Google
reCAPTCHA's ``siteverify`` endpoint.
"""

import logging
from typing import Optional

import httpx

from shortcut.core.exceptions import HumanVerificationError, VerificationProviderError
from shortcut.core.setting import Settings, settings as default_settings

logger = logging.getLogger(__name__)


class RecaptchaVerifier:
    """
    Verifies reCAPTCHA tokens.

    One instance is built at startup and shared, and so is its HTTP client;
    call ``aclose`` on shutdown. Without a configured secret, development
    environments accept any non-empty token so the app runs locally.
    """

    def __init__(
        self,
        config: Settings = default_settings,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.secret_key = config.RECAPTCHA_SECRET_KEY
        self.verify_url = config.RECAPTCHA_VERIFY_URL
        self.timeout = config.RECAPTCHA_TIMEOUT_SECONDS
        self.allow_unconfigured = config.is_development
        self._client = client if client is not None else httpx.AsyncClient()

    @property
    def is_configured(self) -> bool:
        return bool(self.secret_key)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def verify(self, token: Optional[str], remote_ip: Optional[str] = None) -> None:
        """
        Check a challenge token.

        Raises:
            HumanVerificationError: Token missing or rejected
            VerificationProviderError: Provider unreachable, misconfigured,
                or answered with something other than a verdict
        """
        if not token:
            raise HumanVerificationError("Human verification token is required")

        if not self.is_configured:
            if self.allow_unconfigured:
                logger.warning("reCAPTCHA secret not configured, accepting token in development")
                return
            raise VerificationProviderError("human verification is not configured")

        data = {"secret": self.secret_key, "response": token}
        if remote_ip:
            data["remoteip"] = remote_ip

        try:
            response = await self._client.post(self.verify_url, data=data, timeout=self.timeout)
            response.raise_for_status()
            verdict = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("reCAPTCHA verification request failed: %s", e)
            raise VerificationProviderError("verification request failed", original_error=e)

        if not verdict.get("success"):
            logger.info("reCAPTCHA rejected token: %s", verdict.get("error-codes"))
            raise HumanVerificationError()
