"""Log context enrichment: organization, period and actor on every line."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

import structlog


@contextmanager
def billing_context(**kwargs: object) -> Iterator[None]:
    """Bind organization/period keys for the duration of one unit of work."""
    with structlog.contextvars.bound_contextvars(**kwargs):
        yield


def bind_actor(user_id: str | None, is_super_admin: bool = False) -> None:
    """Tag the rest of the current request with the calling actor."""
    structlog.contextvars.bind_contextvars(actor=user_id or "anonymous", super_admin=is_super_admin)
