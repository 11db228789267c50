"""
Request Dependencies

The upstream authentication provider forwards the session as headers;
requests without both are rejected before any processing.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException, Request, status

from expense_assistant.orchestrator import TurnOrchestrator


@dataclass(frozen=True)
class SessionIdentity:
    user_id: str
    organization_id: str


def get_session(
    x_user_id: Optional[str] = Header(default=None),
    x_organization_id: Optional[str] = Header(default=None),
) -> SessionIdentity:
    """Acting user and organization of the request, or 401."""
    if not x_user_id or not x_organization_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )
    return SessionIdentity(user_id=x_user_id, organization_id=x_organization_id)


def get_orchestrator(request: Request) -> TurnOrchestrator:
    return request.app.state.orchestrator
