"""
Upstream identity verification for a single token.
"""

import time
from typing import Optional

import httpx

from shared.logging import get_logger
from shared.metrics import MetricsCollector
from ..audit.sanitizer import mask_secret
from .models import VerificationOutcome, parse_profile

INVALID_TOKEN_MESSAGE = "invalid or expired token"
RATE_LIMITED_MESSAGE = "rate limited by upstream; try later"
GENERIC_FAILURE_MESSAGE = "verification failed"


class UpstreamVerifier:
    """Checks one token against the identity API's "current account" endpoint.

    ``verify`` always returns an outcome. HTTP rejections are classified by
    status, and transport errors, timeouts and malformed bodies become
    invalid outcomes. Nothing is cached and 429s are not retried.
    """

    def __init__(
        self,
        api_url: str,
        client: Optional[httpx.AsyncClient] = None,
        auth_scheme: str = "Bearer",
        timeout: float = 10.0,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.api_url = api_url
        self.auth_scheme = auth_scheme
        self.timeout = timeout
        self.metrics = metrics
        self._client = client
        self.logger = get_logger("verifier.upstream")

    def _headers(self, token: str) -> dict:
        value = f"{self.auth_scheme} {token}" if self.auth_scheme else token
        return {"Authorization": value, "Accept": "application/json"}

    async def verify(self, token: str) -> VerificationOutcome:
        """Verify a token and classify the result."""
        start_time = time.time()
        try:
            response = await self._get(token)
        except Exception as e:
            self.logger.warning(
                "Identity API request failed",
                token=mask_secret(token),
                error_type=type(e).__name__,
                error=str(e)
            )
            return self._record(VerificationOutcome.failure(token, GENERIC_FAILURE_MESSAGE), "error")
        finally:
            if self.metrics is not None:
                self.metrics.observe_histogram("upstream_request_duration_seconds", time.time() - start_time)

        if not response.is_success:
            error = self._classify_failure(response)
            self.logger.info(
                "Token rejected by identity API",
                token=mask_secret(token),
                status_code=response.status_code
            )
            return self._record(VerificationOutcome.failure(token, error), "invalid")

        try:
            body = response.json()
        except ValueError:
            body = None

        parsed = parse_profile(body)
        if not parsed.ok:
            self.logger.warning(
                "Identity API returned an unexpected body",
                token=mask_secret(token),
                error=parsed.error
            )
            return self._record(VerificationOutcome.failure(token, parsed.error), "error")

        return self._record(VerificationOutcome.success(token, parsed.profile), "valid")

    async def _get(self, token: str) -> httpx.Response:
        if self._client is not None:
            return await self._client.get(self.api_url, headers=self._headers(token), timeout=self.timeout)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.get(self.api_url, headers=self._headers(token))

    def _classify_failure(self, response: httpx.Response) -> str:
        if response.status_code == 401:
            return INVALID_TOKEN_MESSAGE
        if response.status_code == 429:
            return RATE_LIMITED_MESSAGE

        try:
            body = response.json()
        except ValueError:
            return GENERIC_FAILURE_MESSAGE
        if isinstance(body, dict) and isinstance(body.get("message"), str) and body["message"]:
            return body["message"]
        return GENERIC_FAILURE_MESSAGE

    def _record(self, outcome: VerificationOutcome, status: str) -> VerificationOutcome:
        if self.metrics is not None:
            self.metrics.increment_counter("token_verifications_total", status=status)
        return outcome
