"""
Policy Engine

Evaluates the rule battery against a DomainState and hands the result to
the reconciler.

IMPORTANT: A quiet day is checked before any rule runs. When it is set no
rule is evaluated at all and every active suggestion is dismissed.
"""

from typing import Iterable, Optional

from life_kernel.models.suggestion import Suggestion, SuggestionCandidate
from life_kernel.policies.reconciler import ReconciliationPlan, reconcile
from life_kernel.policies.rules import DEFAULT_RULES, PolicyRule
from life_kernel.queries.state import DomainState

DEFAULT_MAX_SUGGESTIONS = 3


def evaluate_rules(
    state: DomainState,
    rules: Iterable[PolicyRule] = DEFAULT_RULES,
) -> list[SuggestionCandidate]:
    """Every candidate that fires, in rule order."""
    candidates = []
    for rule in rules:
        candidate = rule.evaluate(state)
        if candidate is not None:
            candidates.append(candidate)
    return candidates


def run_policies(
    state: DomainState,
    rules: Iterable[PolicyRule] = DEFAULT_RULES,
    limit: int = DEFAULT_MAX_SUGGESTIONS,
) -> list[SuggestionCandidate]:
    """
    Candidates for this cycle: one per policy (highest priority wins),
    highest priority first, at most `limit`.

    The sort is stable, so equal priorities keep rule order.
    """
    by_policy: dict = {}
    for candidate in evaluate_rules(state, rules):
        existing = by_policy.get(candidate.policy)
        if existing is None or candidate.priority > existing.priority:
            by_policy[candidate.policy] = candidate

    ranked = sorted(by_policy.values(), key=lambda c: -c.priority)
    return ranked[:limit]


def run_policy_cycle(
    state: DomainState,
    current_active: list[Suggestion],
    rules: Iterable[PolicyRule] = DEFAULT_RULES,
    limit: Optional[int] = None,
) -> ReconciliationPlan:
    if state.quiet_today:
        return reconcile(current_active, [], quiet=True)

    if limit is None:
        limit = DEFAULT_MAX_SUGGESTIONS
    candidates = run_policies(state, rules, limit)
    return reconcile(current_active, candidates)
