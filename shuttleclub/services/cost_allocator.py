"""
Cost allocation for a single session.

Every slot in a session carries the same share of the court fee and of the
extra expenses:

    effective_cost = session_cost * max(court_count, 1)
    cost_per_slot  = (effective_cost + total_extra) / total_slots
    gross          = cost_per_slot * slot_count
    net            = gross - expenses_logged_by_member

Core members skip the court part of their share and pay only the extra part.
Their waived court share is not pushed onto anyone else: the club absorbs it,
so the owed amounts of a session with core members sum to less than its
total cost.

Nothing here touches the database. Callers build a SessionCosts snapshot
from rows and decide what to persist.
"""
from dataclasses import dataclass, field


@dataclass(frozen=True)
class AttendanceRecord:
    user_id: int
    slot_count: int = 1


@dataclass(frozen=True)
class ExpenseRecord:
    user_id: int
    amount: float


@dataclass(frozen=True)
class SessionCosts:
    """Everything the allocator needs to know about one session."""
    session_cost: float
    court_count: int = 1
    attendance: tuple = field(default_factory=tuple)
    expenses: tuple = field(default_factory=tuple)


@dataclass(frozen=True)
class ShareBreakdown:
    user_id: int
    slot_count: int
    is_core: bool
    court_share: float
    extra_share: float
    credit: float

    @property
    def gross(self):
        """Obligation before crediting the member's own expenses."""
        return self.court_share + self.extra_share

    @property
    def net(self):
        """Signed amount owed; negative means the club owes the member."""
        return self.gross - self.credit

    @property
    def covered_by_expenses(self):
        return self.credit >= self.gross


def total_slots(costs):
    return sum(max(int(a.slot_count or 1), 1) for a in costs.attendance)


def effective_session_cost(costs):
    return float(costs.session_cost or 0) * max(int(costs.court_count or 1), 1)


def total_extra(costs):
    return float(sum(e.amount for e in costs.expenses))


def expense_credit(costs, user_id):
    """Total of the expenses this member logged against the session."""
    return float(sum(e.amount for e in costs.expenses if e.user_id == user_id))


def slot_count_for(costs, user_id):
    return sum(max(int(a.slot_count or 1), 1) for a in costs.attendance if a.user_id == user_id)


def breakdown_for(costs, user_id, is_core=False):
    """Per-member share split into court part, extra part and credit.

    Returns None when the member is not in the roster.
    """
    slots = slot_count_for(costs, user_id)
    if slots == 0:
        return None

    credit = expense_credit(costs, user_id)
    all_slots = total_slots(costs)
    if all_slots == 0:
        return ShareBreakdown(user_id, slots, is_core, 0.0, 0.0, credit)

    court_share = effective_session_cost(costs) / all_slots * slots
    extra_share = total_extra(costs) / all_slots * slots
    if is_core:
        court_share = 0.0
    return ShareBreakdown(user_id, slots, is_core, court_share, extra_share, credit)


def amount_owed(costs, user_id, is_core=False):
    """Net amount the member owes for the session (may be negative)."""
    share = breakdown_for(costs, user_id, is_core)
    if share is None:
        return 0.0
    return share.net


def session_breakdown(costs, core_ids=frozenset(), paid_ids=frozenset()):
    """Shares for the whole roster plus session totals."""
    core_ids = set(core_ids)
    paid_ids = set(paid_ids)
    seen = set()
    shares = []
    for record in costs.attendance:
        if record.user_id in seen:
            continue
        seen.add(record.user_id)
        shares.append(breakdown_for(costs, record.user_id, record.user_id in core_ids))

    total_cost = effective_session_cost(costs) + total_extra(costs)
    total_charged = sum(s.gross for s in shares)
    outstanding = sum(
        s.net for s in shares
        if s.net > 0 and s.user_id not in paid_ids
    )
    return {
        'total_slots': total_slots(costs),
        'total_cost': total_cost,
        'total_charged': total_charged,
        'absorbed': total_cost - total_charged if shares else 0.0,
        'outstanding': outstanding,
        'shares': shares,
    }


def member_period_summary(snapshots, user_id, core=False):
    """Slots attended and net owed across many sessions.

    ``snapshots`` is an iterable of SessionCosts; sessions the member did not
    attend are skipped.
    """
    days = 0
    owed = 0.0
    for costs in snapshots:
        share = breakdown_for(costs, user_id, core)
        if share is None:
            continue
        days += share.slot_count
        owed += share.net
    return {'user_id': user_id, 'total_days': days, 'total_owed': owed}
