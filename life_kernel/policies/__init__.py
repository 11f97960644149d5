"""Policy engine: rule battery, runner and suggestion reconciler."""

from life_kernel.policies.engine import (
    DEFAULT_MAX_SUGGESTIONS,
    evaluate_rules,
    run_policies,
    run_policy_cycle,
)
from life_kernel.policies.reconciler import ReconciliationPlan, reconcile
from life_kernel.policies.rules import (
    DEFAULT_RULES,
    ENVELOPE_WARNING_THRESHOLD,
    PolicyRule,
)

__all__ = [
    "DEFAULT_MAX_SUGGESTIONS",
    "DEFAULT_RULES",
    "ENVELOPE_WARNING_THRESHOLD",
    "PolicyRule",
    "ReconciliationPlan",
    "evaluate_rules",
    "reconcile",
    "run_policies",
    "run_policy_cycle",
]
