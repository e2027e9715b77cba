from __future__ import annotations

"""
Prometheus metrics for the treasury engine.

We expose counters, histograms and gauges covering:
- deposits: inbound funding by category
- proposals: created (by provenance), approved votes, executed, cancelled
- rejections: synchronous rejections by error code
- programs: award distributions by program type
- funding: external account top-ups by target kind
- emergency: pause/unpause, emergency withdrawals, recovery
- snapshots: current balance and paused flag

Recording is fire-and-forget and never influences an operation's outcome.
The module can be mounted into any ASGI app or FastAPI app via the helpers at
the bottom.
"""


from typing import Optional

from prometheus_client import (CONTENT_TYPE_LATEST, CollectorRegistry, Counter,
                               Gauge, Histogram, generate_latest)

# Use a dedicated registry so embedding apps can choose to merge or expose it directly.
REGISTRY = CollectorRegistry()

# ────────────────────────────────────────────────────────────────────────────────
# Label conventions
#   category: allocation category id
#   provenance: "manager" | "governance"
#   kind: "proposal" | "batch" | "emergency" | "recovery"
#   code: TreasuryError.code
#   program: ProgramType value
# ────────────────────────────────────────────────────────────────────────────────

DEPOSITS = Counter(
    "treasury_deposits_total",
    "Total deposits received by named category.",
    labelnames=("category",),
    registry=REGISTRY,
)

PROPOSALS_CREATED = Counter(
    "treasury_proposals_created_total",
    "Total withdrawal/batch proposals created by provenance.",
    labelnames=("provenance",),
    registry=REGISTRY,
)

APPROVALS = Counter(
    "treasury_approvals_total",
    "Total approval votes recorded.",
    registry=REGISTRY,
)

EXECUTIONS = Counter(
    "treasury_executions_total",
    "Total outbound executions by kind.",
    labelnames=("kind",),
    registry=REGISTRY,
)

CANCELLATIONS = Counter(
    "treasury_cancellations_total",
    "Total proposals/batches/emergency requests cancelled.",
    registry=REGISTRY,
)

REJECTIONS = Counter(
    "treasury_rejections_total",
    "Total rejected operations by error code.",
    labelnames=("code",),
    registry=REGISTRY,
)

PROGRAM_DISTRIBUTIONS = Counter(
    "treasury_program_distributions_total",
    "Total award distributions (per recipient) by program.",
    labelnames=("program",),
    registry=REGISTRY,
)

EXTERNAL_FUNDINGS = Counter(
    "treasury_external_fundings_total",
    "Total external account top-ups by target kind.",
    labelnames=("target_kind",),
    registry=REGISTRY,
)

EMERGENCY_ACTIONS = Counter(
    "treasury_emergency_actions_total",
    "Total emergency controller actions by action.",
    labelnames=("action",),
    registry=REGISTRY,
)

OUTBOUND_AMOUNT = Histogram(
    "treasury_outbound_amount_units",
    "Distribution of outbound amounts (base units) by kind.",
    labelnames=("kind",),
    buckets=(1, 10, 100, 1_000, 10_000, 100_000, 1_000_000, 1e9, 1e12, 1e15, 1e18, 1e21, 1e24),
    registry=REGISTRY,
)

BALANCE = Gauge(
    "treasury_balance_units",
    "Current treasury ledger balance (base units).",
    registry=REGISTRY,
)

PAUSED = Gauge(
    "treasury_paused",
    "1 when mutating operations are paused, else 0.",
    registry=REGISTRY,
)

# ────────────────────────────────────────────────────────────────────────────────
# Recording helpers
# ────────────────────────────────────────────────────────────────────────────────


def record_deposit(category: str, balance: int) -> None:
    """Increment the deposit counter and refresh the balance gauge."""
    DEPOSITS.labels(category=category).inc()
    BALANCE.set(balance)


def record_proposal(provenance: str) -> None:
    PROPOSALS_CREATED.labels(provenance=provenance).inc()


def record_approval() -> None:
    APPROVALS.inc()


def record_execution(kind: str, amount: int, balance: int) -> None:
    """Record an outbound execution and observe its amount."""
    EXECUTIONS.labels(kind=kind).inc()
    if amount >= 0:
        OUTBOUND_AMOUNT.labels(kind=kind).observe(float(amount))
    BALANCE.set(balance)


def record_cancel() -> None:
    CANCELLATIONS.inc()


def record_rejection(code: str) -> None:
    REJECTIONS.labels(code=code).inc()


def record_program_distribution(program: str, recipients: int) -> None:
    PROGRAM_DISTRIBUTIONS.labels(program=program).inc(recipients)


def record_external_funding(target_kind: str) -> None:
    EXTERNAL_FUNDINGS.labels(target_kind=target_kind).inc()


def record_emergency(action: str) -> None:
    EMERGENCY_ACTIONS.labels(action=action).inc()


def set_paused(paused: bool) -> None:
    PAUSED.set(1 if paused else 0)


# ────────────────────────────────────────────────────────────────────────────────
# ASGI/FastAPI mounting helpers
# ────────────────────────────────────────────────────────────────────────────────


def make_prometheus_asgi_app(registry: Optional[CollectorRegistry] = None):
    """
    Return a minimal ASGI app that serves Prometheus metrics at '/'.
    No external web framework required.
    """
    reg = registry or REGISTRY

    async def app(scope, receive, send):  # type: ignore[override]
        if scope["type"] != "http" or (scope.get("path") or "/") != "/":
            await send({"type": "http.response.start", "status": 404, "headers": []})
            await send({"type": "http.response.body", "body": b"Not Found"})
            return
        payload = generate_latest(reg)
        headers = [
            (b"content-type", CONTENT_TYPE_LATEST.encode("ascii")),
            (b"cache-control", b"no-cache, no-store, must-revalidate"),
        ]
        await send({"type": "http.response.start", "status": 200, "headers": headers})
        await send({"type": "http.response.body", "body": payload})

    return app


def mount_fastapi(
    app, path: str = "/metrics", registry: Optional[CollectorRegistry] = None
) -> None:
    """
    Mount a GET {path} endpoint on a FastAPI app to serve metrics.

    Usage:
        from fastapi import FastAPI
        from treasury.metrics import mount_fastapi
        app = FastAPI()
        mount_fastapi(app)
    """
    from fastapi import Response

    reg = registry or REGISTRY

    @app.get(path)
    def _metrics():
        return Response(generate_latest(reg), media_type=CONTENT_TYPE_LATEST)


__all__ = [
    "REGISTRY",
    "DEPOSITS",
    "PROPOSALS_CREATED",
    "APPROVALS",
    "EXECUTIONS",
    "CANCELLATIONS",
    "REJECTIONS",
    "PROGRAM_DISTRIBUTIONS",
    "EXTERNAL_FUNDINGS",
    "EMERGENCY_ACTIONS",
    "OUTBOUND_AMOUNT",
    "BALANCE",
    "PAUSED",
    "record_deposit",
    "record_proposal",
    "record_approval",
    "record_execution",
    "record_cancel",
    "record_rejection",
    "record_program_distribution",
    "record_external_funding",
    "record_emergency",
    "set_paused",
    "make_prometheus_asgi_app",
    "mount_fastapi",
]
