"""
Mock identity API providing a "current account" endpoint and an audit
webhook receiver.
"""

from typing import Any, Dict, List, Optional, Set

from fastapi import FastAPI, Header, Request, Response
from fastapi.responses import JSONResponse

from shared.logging import get_logger


class MockIdentityServer:
    """Mock identity API implementation.

    Tokens registered with ``add_account`` resolve to their profile; tokens
    in ``rate_limited`` get a 429, tokens in ``malformed`` get a 200 with a
    body that is not a profile, and anything else gets a 401.
    """

    def __init__(self, port: int = 8090):
        self.port = port
        self.logger = get_logger("mock.identity")
        self.app = FastAPI(title="Mock Identity API", version="1.0.0")

        self.accounts: Dict[str, Dict[str, Any]] = {}
        self.rate_limited: Set[str] = set()
        self.malformed: Set[str] = set()

        # Seen by tests: tokens presented, and webhook bodies received
        self.requests: List[str] = []
        self.audit_events: List[Dict[str, Any]] = []

        self._setup_routes()

    def add_account(self, token: str, account_id: str, username: str, **fields) -> Dict[str, Any]:
        profile = {
            "id": account_id,
            "username": username,
            "discriminator": fields.pop("discriminator", "0"),
            "avatar": fields.pop("avatar", None),
            "email": fields.pop("email", None),
            "phone": fields.pop("phone", None),
            **fields
        }
        self.accounts[token] = profile
        return profile

    def _setup_routes(self):
        """Set up mock identity routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "mock-identity",
                "message": "Mock identity API for the token verification service",
                "version": "1.0.0"
            }

        @self.app.get("/users/@me")
        async def current_account(authorization: Optional[str] = Header(default=None)):
            """Resolve the presented credential to its account."""
            token = (authorization or "").removeprefix("Bearer ").strip()
            self.requests.append(token)

            if token in self.rate_limited:
                return JSONResponse(
                    status_code=429,
                    content={"message": "You are being rate limited.", "retry_after": 1.0}
                )

            if token in self.malformed:
                return {"unexpected": True}

            profile = self.accounts.get(token)
            if profile is None:
                return JSONResponse(status_code=401, content={"message": "401: Unauthorized", "code": 0})

            return profile

        @self.app.post("/webhooks/audit")
        async def audit_webhook(request: Request):
            """Collect audit webhook deliveries."""
            body = await request.json()
            self.audit_events.append(body)
            return Response(status_code=204)


def create_app():
    """Create mock identity application."""
    server = MockIdentityServer()
    return server.app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(create_app(), host="0.0.0.0", port=8090)
