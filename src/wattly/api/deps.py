"""Request-scoped helpers shared by the routers."""

from __future__ import annotations

from fastapi import Request

from wattly.authz import Actor
from wattly.logging.context import bind_actor
from wattly.services import Services

_TRUE = ("1", "true", "yes")


def get_actor(request: Request) -> Actor:
    """Caller identity as forwarded by the upstream authentication layer."""
    header = request.app.state.config.api.actor_header
    user_id = request.headers.get(header) or None
    super_admin = request.headers.get(f"{header}-Super-Admin", "").lower() in _TRUE
    bind_actor(user_id, super_admin)
    return Actor(user_id=user_id, is_super_admin=super_admin)


def get_services(request: Request) -> Services:
    return request.app.state.services
