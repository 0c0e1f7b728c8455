# core/workflow.py
"""
Status state machines for verification cycles, verification databases,
payment invoices and payout batches.

Every route that changes or depends on an entity status goes through the
machines defined here, so the allowed transitions live in one table per
entity instead of being re-derived per endpoint.
"""
from collections.abc import Iterable, Mapping

from core.errors import InvalidStatusError, InvalidTransitionError


class StateMachine:
    """
    A named transition table.

    `transitions` holds the moves callers may request. `system_transitions`
    holds moves only scheduled jobs make (e.g. invoices going overdue); they
    are accepted only when `system=True` is passed.
    """

    def __init__(
        self,
        name: str,
        transitions: Mapping[str, Iterable[str]],
        system_transitions: Mapping[str, Iterable[str]] | None = None,
    ):
        self.name = name
        self._transitions = {state: frozenset(targets) for state, targets in transitions.items()}
        self._system = {
            state: frozenset(targets) for state, targets in (system_transitions or {}).items()
        }

    @property
    def states(self) -> tuple[str, ...]:
        return tuple(self._transitions)

    def is_terminal(self, state: str) -> bool:
        return not self._transitions.get(state) and not self._system.get(state)

    def allowed_targets(self, current: str, *, system: bool = False) -> frozenset[str]:
        targets = self._transitions.get(current, frozenset())
        if system:
            targets = targets | self._system.get(current, frozenset())
        return targets

    def can_transition(self, current: str, target: str, *, system: bool = False) -> bool:
        return target in self.allowed_targets(current, system=system)

    def ensure_transition(self, current: str, target: str, *, system: bool = False) -> None:
        """Raise InvalidTransitionError unless `current -> target` is allowed."""
        if not self.can_transition(current, target, system=system):
            raise InvalidTransitionError(
                f"Invalid {self.name} status transition: {current} -> {target}",
                details={
                    "current_status": current,
                    "requested_status": target,
                    "allowed": sorted(self.allowed_targets(current, system=system)),
                },
            )

    def require(self, current: str, *allowed: str) -> None:
        """Raise InvalidStatusError unless the entity is in one of `allowed`."""
        if current not in allowed:
            raise InvalidStatusError(
                f"Invalid {self.name} status: {current}. Expected: {', '.join(allowed)}",
                details={"current_status": current, "expected": list(allowed)},
            )


CYCLE_STATUSES = (
    "preparing",
    "ready",
    "distributed",
    "collecting",
    "processing",
    "invoicing",
    "completed",
    "expired",
)

cycle_workflow = StateMachine(
    "cycle",
    {
        "preparing": {"ready", "expired"},
        "ready": {"distributed", "expired"},
        "distributed": {"collecting", "expired"},
        "collecting": {"processing", "expired"},
        "processing": {"invoicing", "expired"},
        "invoicing": {"completed", "expired"},
        "completed": set(),
        "expired": set(),
    },
)

DATABASE_STATUSES = ("preparing", "ready", "submitted", "processed")

database_workflow = StateMachine(
    "database",
    {
        "preparing": {"ready"},
        # back to preparing while a regeneration rebuilds the snapshot
        "ready": {"preparing", "submitted"},
        "submitted": {"processed"},
        "processed": set(),
    },
)

INVOICE_STATUSES = ("pending", "disputed", "overdue", "paid", "cancelled")

invoice_workflow = StateMachine(
    "payment",
    {
        "pending": {"paid", "disputed", "cancelled"},
        "disputed": {"paid", "cancelled"},
        "overdue": {"paid", "disputed", "cancelled"},
        "paid": set(),
        "cancelled": set(),
    },
    system_transitions={"pending": {"overdue"}},
)


PAYMENT_BATCH_STATUSES = ("pending", "processing", "completed", "failed")

payment_batch_workflow = StateMachine(
    "payment batch",
    {
        "pending": {"processing"},
        "processing": {"completed", "failed"},
        # failed payouts can be retried
        "failed": {"processing"},
        "completed": set(),
    },
)


def apply_transition(entity, machine: StateMachine, target: str, *, system: bool = False) -> str:
    """Validate and apply a status change on an ORM object; return the old status."""
    previous = entity.status
    machine.ensure_transition(previous, target, system=system)
    entity.status = target
    return previous
