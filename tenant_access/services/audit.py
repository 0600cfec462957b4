"""Audit trail for membership lifecycle events.

Events go to the dedicated ``tenant_access.audit`` logger so deployments
can route them to a separate sink. The JSON formatter renders
``audit_action`` and ``details`` as top-level fields.
"""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

audit_logger = logging.getLogger("tenant_access.audit")


def record(
    action: str,
    *,
    actor_id: UUID | None,
    org_id: UUID | None,
    **details: Any,
) -> None:
    audit_logger.info(
        "audit %s actor=%s org=%s",
        action,
        actor_id,
        org_id,
        extra={
            "audit_action": action,
            "user_id": str(actor_id) if actor_id else None,
            "org_id": str(org_id) if org_id else None,
            "details": {k: str(v) for k, v in details.items()},
        },
    )
