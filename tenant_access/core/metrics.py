"""Application metrics (Prometheus client).

One inventory of everything the service counts. Modules import a metric
and increment it at the point of action; GET /metrics exposes them.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge

AUTHZ_DECISIONS = Counter(
    "authz_decisions_total",
    "Authorization filter decisions by catalog and outcome",
    ["catalog", "outcome"],  # outcome: allow|deny_context|deny_role|deny_permission
)

TENANT_RESOLUTIONS = Counter(
    "tenant_resolutions_total",
    "Tenant resolution results",
    ["result"],  # explicit|personal|fallback|denied
)

INVITATION_TRANSITIONS = Counter(
    "invitation_transitions_total",
    "Invitation state machine transitions",
    ["transition"],  # issued|resent|revoked|accepted
)

SEAT_REJECTIONS = Counter(
    "seat_rejections_total",
    "Operations rejected because the organization is at its seat limit",
    ["operation"],  # invite_member|accept_invitation
)

NOTIFICATION_FAILURES = Counter(
    "notification_failures_total",
    "Notification sends that failed and were swallowed",
    ["template"],
)

QUEUE_DEPTH = Gauge(
    "task_queue_depth",
    "Number of tasks waiting in a queue",
    ["queue_name"],
)
