"""
Offer lifecycle rules shared by the API and the client view models.

Everything here is a pure function of the snapshot it is given: no database,
no network and no Django import, so the client can reuse it on JSON payloads.
Records may be model instances or mappings; both expose ``loan_id``,
``status`` and optionally ``loan_status``.

A loan is *locked* once one of its offers is accepted or once the loan itself
left ``pending``. Offers of a locked loan are never selectable, whatever their
own stored status says.
"""

from collections.abc import Mapping
from typing import Any, Dict, Iterable, List, Optional

LOAN_PENDING = 'pending'
LOAN_APPROVED = 'approved'
LOAN_FUNDED = 'funded'
LOAN_COMPLETED = 'completed'
LOAN_REJECTED = 'rejected'
LOAN_CANCELLED = 'cancelled'

LOAN_STATUSES = (
    LOAN_PENDING, LOAN_APPROVED, LOAN_FUNDED, LOAN_COMPLETED, LOAN_REJECTED, LOAN_CANCELLED,
)

LOAN_TERMINAL_STATUSES = frozenset({LOAN_COMPLETED, LOAN_REJECTED, LOAN_CANCELLED})

# Legal loan transitions. ``approved`` is only reachable through accepting
# an offer, never through a direct status update.
LOAN_TRANSITIONS = {
    LOAN_PENDING: frozenset({LOAN_APPROVED, LOAN_REJECTED, LOAN_CANCELLED}),
    LOAN_APPROVED: frozenset({LOAN_FUNDED}),
    LOAN_FUNDED: frozenset({LOAN_COMPLETED}),
}

OFFER_PENDING = 'pending'
OFFER_ACCEPTED = 'accepted'
OFFER_REJECTED = 'rejected'

OFFER_STATUSES = (OFFER_PENDING, OFFER_ACCEPTED, OFFER_REJECTED)


def _value(record: Any, name: str, default: Any = None) -> Any:
    if isinstance(record, Mapping):
        return record.get(name, default)
    return getattr(record, name, default)


def _same_loan(left: Any, right: Any) -> bool:
    # JSON payloads and URL parameters don't always agree on int vs str ids
    return left is not None and right is not None and str(left) == str(right)


def can_transition(current: str, target: str) -> bool:
    return target in LOAN_TRANSITIONS.get(current, frozenset())


def is_loan_locked(loan_id: Any, offers: Iterable[Any], loan_status: Optional[str] = None) -> bool:
    """
    True when the loan can no longer accept an offer.

    ``loan_status`` is the loan's own status when the caller knows it; the
    ``loan_status`` carried on each offer record is consulted too.
    """
    if loan_status is not None and loan_status != LOAN_PENDING:
        return True

    for offer in offers:
        if not _same_loan(_value(offer, 'loan_id'), loan_id):
            continue
        if _value(offer, 'status') == OFFER_ACCEPTED:
            return True
        sibling_loan_status = _value(offer, 'loan_status')
        if sibling_loan_status is not None and sibling_loan_status != LOAN_PENDING:
            return True
    return False


def can_select(offer: Any, offers: Iterable[Any], loan_status: Optional[str] = None) -> bool:
    """True when ``offer`` may be picked for acceptance."""
    if _value(offer, 'status') != OFFER_PENDING:
        return False
    if loan_status is None:
        loan_status = _value(offer, 'loan_status')
    return not is_loan_locked(_value(offer, 'loan_id'), offers, loan_status=loan_status)


def selectable_offers(offers: Iterable[Any]) -> List[Any]:
    offers = list(offers)
    return [offer for offer in offers if can_select(offer, offers)]


def group_offers_by_loan(offers: Iterable[Any]) -> List[Dict[str, Any]]:
    """
    Partition offers per loan, preserving first-seen order.

    Each group reports ``has_accepted`` and ``locked``; a locked group renders
    every member as non-selectable.
    """
    offers = list(offers)
    groups: Dict[str, Dict[str, Any]] = {}

    for offer in offers:
        loan_id = _value(offer, 'loan_id')
        group = groups.get(str(loan_id))
        if group is None:
            group = {
                'loan_id': loan_id,
                'purpose': _value(offer, 'purpose'),
                'loan_status': _value(offer, 'loan_status'),
                'offers': [],
                'has_accepted': False,
            }
            groups[str(loan_id)] = group
        group['offers'].append(offer)
        if _value(offer, 'status') == OFFER_ACCEPTED:
            group['has_accepted'] = True

    for group in groups.values():
        group['locked'] = is_loan_locked(group['loan_id'], group['offers'], loan_status=group['loan_status'])
        group['selectable_offer_ids'] = [
            _value(offer, 'id') for offer in group['offers']
            if can_select(offer, group['offers'])
        ]

    return list(groups.values())
