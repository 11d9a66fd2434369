from hoa_backend.auth.models import BuildingManager, User
from hoa_backend.core.models.building import Building
from hoa_backend.core.models.unit import Unit
from hoa_backend.core.models.hoa_fee_plan import HOAFeePlan
from hoa_backend.core.models.unit_charge import UnitCharge
from hoa_backend.core.models.payment import Payment
from hoa_backend.core.models.payment_allocation import PaymentAllocation
from hoa_backend.core.models.ledger_entry import LedgerEntry
from hoa_backend.core.models.audit_log import AuditLog

__all__ = [
    "AuditLog",
    "Building",
    "BuildingManager",
    "HOAFeePlan",
    "LedgerEntry",
    "Payment",
    "PaymentAllocation",
    "Unit",
    "UnitCharge",
    "User",
]
