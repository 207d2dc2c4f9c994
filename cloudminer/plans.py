"""
plans.py - Subscription plan tiers.

Plan numbering matches the ShareCoin contract's `userPlan` enum. Each tier maps
to a per-tick block discovery probability and a nominal hash rate used for
display and network totals.
"""

from enum import IntEnum


class Plan(IntEnum):
    NONE = 0
    BASIC = 1
    STANDARD = 2
    PREMIUM = 3
    LIFETIME = 4


# Probability of finding a block on one discovery tick
FIND_PROBABILITY = {
    Plan.BASIC: 1 / 720,
    Plan.STANDARD: 1 / 480,
    Plan.PREMIUM: 1 / 360,
    Plan.LIFETIME: 1 / 360,
}

# Nominal hash rate (H/s) shown to clients
PLAN_HASH_RATE = {
    Plan.BASIC: 500,
    Plan.STANDARD: 2000,
    Plan.PREMIUM: 5000,
    Plan.LIFETIME: 5555,
}

MIN_PLAN = Plan.BASIC
MAX_PLAN = Plan.LIFETIME


def is_valid_plan(plan) -> bool:
    """True if `plan` is a tier a session may mine with."""
    try:
        return MIN_PLAN <= int(plan) <= MAX_PLAN
    except (TypeError, ValueError):
        return False


def find_probability(plan: int) -> float:
    if not is_valid_plan(plan):
        return 0.0
    return FIND_PROBABILITY[Plan(int(plan))]


def hash_rate(plan: int) -> int:
    if not is_valid_plan(plan):
        return 0
    return PLAN_HASH_RATE[Plan(int(plan))]


def plan_name(plan: int) -> str:
    try:
        return Plan(int(plan)).name.title()
    except (TypeError, ValueError):
        return "Unknown"
