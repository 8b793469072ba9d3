"""
Custody Events
==============
Explicit side effects returned by workflow transitions.

A transition never touches the asset table itself; it returns one or more
of these events and the service hands them to
``assets.ledger.CustodyLedger.apply`` inside the same transaction.
"""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class CustodyEvent:
    asset_ids: tuple
    reference_id: str = None
    action = 'UPDATE'

    def __post_init__(self):
        object.__setattr__(self, 'asset_ids', tuple(dict.fromkeys(self.asset_ids)))

    def patch(self):
        raise NotImplementedError

    def detail(self):
        return f"{self.action.replace('_', ' ').title()} ({len(self.asset_ids)} asset(s))"


@dataclass(frozen=True)
class AssetsAssigned(CustodyEvent):
    """Assets leave storage and go into active use by a holder."""

    holder_user: object = None
    holder_customer: object = None
    action = 'ASSIGNED'

    def patch(self):
        return {
            'status': 'IN_USE',
            'current_holder_user': self.holder_user,
            'current_holder_customer': self.holder_customer,
        }

    def detail(self):
        holder = self.holder_user or self.holder_customer
        return f"Assigned to {holder} via {self.reference_id}"


@dataclass(frozen=True)
class AssetsAwaitingReturn(CustodyEvent):
    """The holder has handed the assets back; physical check pending."""

    action = 'RETURN_SUBMITTED'

    def patch(self):
        return {'status': 'AWAITING_RETURN'}

    def detail(self):
        return f"Return submitted in {self.reference_id}, awaiting verification"


@dataclass(frozen=True)
class AssetsReleased(CustodyEvent):
    """Verified returns go back to storage (or to DAMAGED)."""

    status: str = 'IN_STORAGE'
    condition: str = None
    location: str = None
    action = 'RETURNED'

    def patch(self):
        patch = {
            'status': self.status,
            'current_holder_user': None,
            'current_holder_customer': None,
        }
        if self.condition:
            patch['condition'] = self.condition
        if self.location:
            patch['location'] = self.location
        return patch

    def detail(self):
        return f"Return accepted in {self.reference_id}, now {self.status}"


@dataclass(frozen=True)
class AssetsReverted(CustodyEvent):
    """A rejected return: the assets are still on loan with their holder."""

    action = 'RETURN_REJECTED'

    def patch(self):
        return {'status': 'IN_USE'}

    def detail(self):
        return f"Return rejected in {self.reference_id}, still on loan"


@dataclass(frozen=True)
class AssetsRegistered:
    """New assets recorded against a purchase request item."""

    name: str
    brand: str
    count: int
    reference_id: str = None
    fields: dict = field(default_factory=dict)
