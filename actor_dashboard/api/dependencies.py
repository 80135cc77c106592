"""FastAPI dependencies shared by the routers."""

from __future__ import annotations

from fastapi import Header

from actor_dashboard.services.dashboard import DashboardService, get_dashboard_service


def get_service() -> DashboardService:
    return get_dashboard_service()


def get_bearer_token(authorization: str | None = Header(None)) -> str | None:
    """
    Session token from "Authorization: Bearer <token>".
    Missing or malformed headers resolve to None and are rejected by the service.
    """
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None
