"""
Verifier service: checks bearer tokens against the upstream identity API.
"""

import asyncio
from typing import Awaitable, Callable, Optional

import httpx
from fastapi import FastAPI

from shared.base_service import BaseService
from shared.config import ServiceConfig
from .audit.sink import AuditSink
from .batch.orchestrator import BatchOrchestrator
from .pipeline import VerificationPipeline
from .store.base import VerifiedRecordStore
from .store.memory_store import MemoryRecordStore
from .verification.models import BulkTokenCheckRequest, TokenCheckRequest
from .verification.verifier import UpstreamVerifier


class VerifierService(BaseService):
    """Verifier service implementation.

    Collaborators are built in the lifespan startup hook. A store or HTTP
    client passed in is used as-is and left open at shutdown; the ones the
    service creates itself are closed.
    """

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        store: Optional[VerifiedRecordStore] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._injected_store = store
        self._injected_client = http_client
        self._sleep = sleep
        self._client: Optional[httpx.AsyncClient] = None
        self.pipeline: Optional[VerificationPipeline] = None

        super().__init__("verifier", 8020, config)
        self._setup_verifier_routes()

    async def startup(self):
        config = self.config
        self._client = self._injected_client or httpx.AsyncClient(timeout=config.upstream_timeout_seconds)
        store = self._injected_store or MemoryRecordStore()

        verifier = UpstreamVerifier(
            config.identity_api_url,
            client=self._client,
            auth_scheme=config.auth_scheme,
            timeout=config.upstream_timeout_seconds,
            metrics=self.metrics
        )
        audit = AuditSink(
            webhook_url=config.audit_webhook_url,
            client=self._client,
            forward_kinds=config.audit_forward_kinds,
            username=config.audit_username,
            avatar_url=config.audit_avatar_url,
            timeout=config.audit_timeout_seconds,
            max_data_chars=config.audit_max_data_chars,
            metrics=self.metrics
        )
        orchestrator = BatchOrchestrator(
            verifier,
            store,
            audit,
            max_items=config.batch_max_items,
            item_delay_ms=config.batch_item_delay_ms,
            sleep=self._sleep,
            metrics=self.metrics
        )
        self.pipeline = VerificationPipeline(
            verifier,
            store,
            audit,
            orchestrator,
            min_token_length=config.min_token_length,
            token_separator=config.token_separator,
            metrics=self.metrics
        )

    async def shutdown(self):
        if self.pipeline is not None:
            await self.pipeline.audit.drain()
            if self._injected_store is None:
                await self.pipeline.store.close()
        if self._client is not None and self._injected_client is None:
            await self._client.aclose()
        self.pipeline = None
        self._client = None

    def _get_pipeline(self) -> VerificationPipeline:
        if self.pipeline is None:
            raise RuntimeError("Verifier service has not been started")
        return self.pipeline

    def _setup_verifier_routes(self):
        """Set up verifier-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "verifier",
                "message": "Token verification service",
                "version": "1.0.0"
            }

        @self.app.post("/tokens/check")
        async def check_token(request: TokenCheckRequest):
            """Check one token. Validity is reported in the body, not the status."""
            outcome = await self._get_pipeline().check_one(request.token)
            return outcome.to_dict()

        @self.app.post("/tokens/check-bulk")
        async def check_tokens(request: BulkTokenCheckRequest):
            """Check newline-delimited tokens sequentially."""
            result = await self._get_pipeline().check_many(request.tokens)
            return result.to_dict()

        @self.app.get("/tokens/saved")
        async def list_saved_tokens():
            """List every saved record, newest first."""
            records = await self._get_pipeline().list_records()
            return {
                "tokens": [record.model_dump() for record in records],
                "count": len(records)
            }

        @self.app.get("/tokens/saved/{account_id}")
        async def list_saved_tokens_for_account(account_id: str):
            """List saved records for one account."""
            records = await self._get_pipeline().list_records(account_id)
            return {
                "tokens": [record.model_dump() for record in records],
                "count": len(records)
            }

    async def _check_dependencies(self):
        """Check verifier dependencies."""
        pipeline = self._get_pipeline()
        dependencies = {}

        try:
            dependencies["saved_tokens"] = await pipeline.store.count()
            dependencies["store"] = "ok"
        except Exception as e:
            self.logger.error("Store health check failed", error=str(e))
            dependencies["store"] = "error"

        dependencies["audit_sink"] = "webhook" if pipeline.audit.enabled else "local"
        return dependencies


def create_app(
    config: Optional[ServiceConfig] = None,
    store: Optional[VerifiedRecordStore] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> FastAPI:
    """Create FastAPI application."""
    service = VerifierService(config=config, store=store, http_client=http_client, sleep=sleep)
    return service.app


if __name__ == "__main__":
    service = VerifierService()
    service.run()
