"""
Suggestion Reconciler

Diffs what the rules propose now against what is already showing and
returns the minimal set of writes:

- DISMISS: active suggestion whose policy no longer fires
- UPDATE:  policy still fires but headline/subtext/priority/action changed;
           patched in place so id and created_at survive
- CREATE:  policy fires with nothing active for it

CRITICAL: Reconciliation is idempotent. Applying a plan and reconciling
again with the same candidates yields an empty plan.
"""

from pydantic import BaseModel, ConfigDict, Field

from life_kernel.models.suggestion import (
    PolicyName,
    Suggestion,
    SuggestionCandidate,
    SuggestionUpdate,
)


class ReconciliationPlan(BaseModel):
    model_config = ConfigDict(frozen=True)

    create: list[SuggestionCandidate] = Field(default_factory=list)
    update: list[SuggestionUpdate] = Field(default_factory=list)
    dismiss: list[str] = Field(default_factory=list)
    suppressed_by_quiet_day: bool = False

    @property
    def is_empty(self) -> bool:
        return not (self.create or self.update or self.dismiss)

    @property
    def write_count(self) -> int:
        return len(self.create) + len(self.update) + len(self.dismiss)


def _active_by_policy(current_active: list[Suggestion]) -> tuple[dict[PolicyName, Suggestion], list[str]]:
    """
    One active suggestion per policy, plus the ids of any extras.

    More than one active suggestion for a policy breaks the invariant; the
    oldest is kept and the rest are dismissed.
    """
    kept: dict[PolicyName, Suggestion] = {}
    extras: list[str] = []
    for suggestion in sorted(current_active, key=lambda s: (s.created_at, s.id)):
        if not suggestion.is_active:
            continue
        if suggestion.policy in kept:
            extras.append(suggestion.id)
        else:
            kept[suggestion.policy] = suggestion
    return kept, extras


def reconcile(
    current_active: list[Suggestion],
    next_candidates: list[SuggestionCandidate],
    quiet: bool = False,
) -> ReconciliationPlan:
    """
    Compute the create/update/dismiss plan.

    Args:
        current_active: Un-dismissed suggestions as stored
        next_candidates: At most one candidate per policy
        quiet: Quiet day override; dismiss everything, create nothing
    """
    active, extras = _active_by_policy(current_active)

    if quiet:
        return ReconciliationPlan(
            dismiss=[s.id for s in active.values()] + extras,
            suppressed_by_quiet_day=True,
        )

    candidates = {c.policy: c for c in next_candidates}
    create: list[SuggestionCandidate] = []
    update: list[SuggestionUpdate] = []
    dismiss: list[str] = list(extras)

    for policy, suggestion in active.items():
        if policy not in candidates:
            dismiss.append(suggestion.id)

    for policy, candidate in candidates.items():
        existing = active.get(policy)
        if existing is None:
            create.append(candidate)
        elif candidate.differs_from(existing):
            update.append(SuggestionUpdate(
                suggestion_id=existing.id,
                policy=policy,
                headline=candidate.headline,
                subtext=candidate.subtext,
                priority=candidate.priority,
                action=candidate.action,
            ))

    return ReconciliationPlan(create=create, update=update, dismiss=dismiss)
