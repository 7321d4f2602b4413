from dataclasses import dataclass

UNLIMITED = -1


@dataclass(frozen=True)
class TierPolicy:
    name: str
    batch_max: int           # providers per group scan
    concurrency: int         # scans in flight per group scan
    daily_scans: int         # UNLIMITED for no cap


TIERS = {
    "anonymous": TierPolicy("anonymous", batch_max=10, concurrency=5, daily_scans=100),
    "free": TierPolicy("free", batch_max=10, concurrency=5, daily_scans=100),
    "pro": TierPolicy("pro", batch_max=50, concurrency=10, daily_scans=10_000),
    "enterprise": TierPolicy("enterprise", batch_max=100, concurrency=10, daily_scans=UNLIMITED),
}

# Older plan names still present on existing accounts
LEGACY_PLANS = {
    "intelligence": "pro",
    "api": "pro",
    "care": "enterprise",
}


def normalize_plan(plan: str | None) -> str:
    """Map any plan name (current or legacy, any case) to a tier name.

    Unknown or missing plans fall back to ``anonymous``.
    """
    if not plan:
        return "anonymous"
    name = plan.strip().lower()
    name = LEGACY_PLANS.get(name, name)
    return name if name in TIERS else "anonymous"


def get_tier(plan: str | None) -> TierPolicy:
    return TIERS[normalize_plan(plan)]
