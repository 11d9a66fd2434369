from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from hoa_backend.api.v1.hoa import service as hoa_service
from hoa_backend.api.v1.payments import service
from hoa_backend.api.v1.payments.schemas import ManualPaymentRequest, PaymentCreate
from hoa_backend.core.enums import LedgerEntryType, ManualPaymentMethod, PaymentStatus, UnitChargeStatus
from hoa_backend.core.exceptions import ConflictError, PermissionDeniedError, ValidationError
from hoa_backend.core.models import AuditLog, LedgerEntry, Payment, PaymentAllocation

from conftest import BEFORE_DUE, PERIOD


@pytest.fixture()
async def charge_id(db_session: AsyncSession, manager, hoa):
    await hoa_service.generate_charges(db_session, manager, hoa.plan_id, PERIOD, today=BEFORE_DUE)
    return (await hoa_service.list_unit_charges(db_session, manager, hoa.unit_ids[0]))[0].id


async def _charge(db: AsyncSession, manager, charge_id):
    return await hoa_service.get_charge(db, manager, charge_id)


async def _unit_ledger(db: AsyncSession, unit_id):
    result = await db.execute(
        select(LedgerEntry).where(LedgerEntry.unit_id == unit_id).order_by(LedgerEntry.sequence)
    )
    return result.scalars().all()


@pytest.mark.asyncio
async def test_add_manual_payments(db_session: AsyncSession, manager, hoa, charge_id) -> None:
    first = await service.add_manual_payment(
        db_session, manager, charge_id,
        ManualPaymentRequest(paid_amount=Decimal("200"), method=ManualPaymentMethod.CASH, reference="R-1"),
        today=BEFORE_DUE,
    )
    assert first.status == UnitChargeStatus.PARTIALLY_PAID
    assert first.amount_paid == Decimal("200.00")
    assert first.outstanding == Decimal("250.00")

    second = await service.add_manual_payment(
        db_session, manager, charge_id,
        ManualPaymentRequest(paid_amount=Decimal("250"), method=ManualPaymentMethod.CHECK),
        today=BEFORE_DUE,
    )
    assert second.status == UnitChargeStatus.PAID
    assert second.outstanding == Decimal("0.00")

    ledger = await _unit_ledger(db_session, hoa.unit_ids[0])
    assert [e.entry_type for e in ledger] == [
        LedgerEntryType.CHARGE.value,
        LedgerEntryType.PAYMENT.value,
        LedgerEntryType.PAYMENT.value,
    ]
    assert [Decimal(e.balance_after) for e in ledger] == [Decimal("450.00"), Decimal("250.00"), Decimal("0.00")]
    audit = (await db_session.execute(select(AuditLog).where(AuditLog.action == "ManualPayment"))).scalars().all()
    assert len(audit) == 2
    assert audit[0].performed_by == manager.id


@pytest.mark.asyncio
async def test_manual_overpayment_rejected(db_session: AsyncSession, manager, hoa, charge_id) -> None:
    await service.add_manual_payment(
        db_session, manager, charge_id, ManualPaymentRequest(paid_amount=Decimal("400")), today=BEFORE_DUE
    )

    with pytest.raises(ConflictError) as exc:
        await service.add_manual_payment(
            db_session, manager, charge_id, ManualPaymentRequest(paid_amount=Decimal("60")), today=BEFORE_DUE
        )

    assert "exceeds outstanding balance (50.00)" in exc.value.message
    assert (await db_session.execute(select(func.count(Payment.id)))).scalar() == 1
    charge = await _charge(db_session, manager, charge_id)
    assert charge.amount_paid == Decimal("400.00")
    assert len(await _unit_ledger(db_session, hoa.unit_ids[0])) == 2


@pytest.mark.asyncio
async def test_manual_payment_needs_building_access(db_session: AsyncSession, other_manager, charge_id) -> None:
    with pytest.raises(PermissionDeniedError):
        await service.add_manual_payment(
            db_session, other_manager, charge_id, ManualPaymentRequest(paid_amount=Decimal("10"))
        )


@pytest.mark.asyncio
async def test_edit_manual_payment(db_session: AsyncSession, manager, hoa, charge_id) -> None:
    added = await service.add_manual_payment(
        db_session, manager, charge_id, ManualPaymentRequest(paid_amount=Decimal("200")), today=BEFORE_DUE
    )

    edited = await service.edit_manual_payment(
        db_session, manager, added.payment_id,
        ManualPaymentRequest(paid_amount=Decimal("450"), method=ManualPaymentMethod.BANK_TRANSFER, reference="TX-9"),
        today=BEFORE_DUE,
    )

    assert edited.amount == Decimal("450.00")
    assert edited.provider_reference == "TX-9"
    assert [a.allocated_amount for a in edited.allocations] == [Decimal("450.00")]
    assert (await _charge(db_session, manager, charge_id)).status == UnitChargeStatus.PAID
    ledger = await _unit_ledger(db_session, hoa.unit_ids[0])
    assert Decimal(ledger[-1].credit) == Decimal("250.00")
    assert Decimal(ledger[-1].balance_after) == Decimal("0.00")

    lowered = await service.edit_manual_payment(
        db_session, manager, added.payment_id, ManualPaymentRequest(paid_amount=Decimal("300")), today=BEFORE_DUE
    )
    assert lowered.amount == Decimal("300.00")
    assert (await _charge(db_session, manager, charge_id)).status == UnitChargeStatus.PARTIALLY_PAID
    ledger = await _unit_ledger(db_session, hoa.unit_ids[0])
    assert ledger[-1].entry_type == LedgerEntryType.ADJUSTMENT.value
    assert ledger[-1].category == "PaymentReversal"
    assert Decimal(ledger[-1].balance_after) == Decimal("150.00")


@pytest.mark.asyncio
async def test_edit_beyond_outstanding_keeps_previous_allocation(db_session: AsyncSession, manager, charge_id) -> None:
    added = await service.add_manual_payment(
        db_session, manager, charge_id, ManualPaymentRequest(paid_amount=Decimal("200")), today=BEFORE_DUE
    )

    with pytest.raises(ConflictError):
        await service.edit_manual_payment(
            db_session, manager, added.payment_id, ManualPaymentRequest(paid_amount=Decimal("500"))
        )

    allocations = (await db_session.execute(select(PaymentAllocation))).scalars().all()
    assert [Decimal(a.allocated_amount) for a in allocations] == [Decimal("200.00")]
    charge = await _charge(db_session, manager, charge_id)
    assert charge.amount_paid == Decimal("200.00")
    assert charge.status == UnitChargeStatus.PARTIALLY_PAID


@pytest.mark.asyncio
async def test_only_manual_payments_are_editable(db_session: AsyncSession, manager, hoa, charge_id) -> None:
    online = await service.record_payment(
        db_session, manager, PaymentCreate(unit_id=hoa.unit_ids[0], amount=Decimal("100")), today=BEFORE_DUE
    )
    with pytest.raises(ValidationError):
        await service.edit_manual_payment(db_session, manager, online.id, ManualPaymentRequest(paid_amount=Decimal("50")))
    with pytest.raises(ValidationError):
        await service.cancel_payment(db_session, manager, online.id)


@pytest.mark.asyncio
async def test_cancel_restores_status_step_by_step(db_session: AsyncSession, manager, hoa, charge_id) -> None:
    first = await service.add_manual_payment(
        db_session, manager, charge_id, ManualPaymentRequest(paid_amount=Decimal("200")), today=BEFORE_DUE
    )
    second = await service.add_manual_payment(
        db_session, manager, charge_id, ManualPaymentRequest(paid_amount=Decimal("250")), today=BEFORE_DUE
    )
    assert (await _charge(db_session, manager, charge_id)).status == UnitChargeStatus.PAID

    cancelled = await service.cancel_payment(db_session, manager, second.payment_id, today=BEFORE_DUE)
    assert cancelled.status == PaymentStatus.CANCELLED
    assert cancelled.allocations == []
    charge = await _charge(db_session, manager, charge_id)
    assert charge.status == UnitChargeStatus.PARTIALLY_PAID
    assert charge.amount_paid == Decimal("200.00")

    await service.cancel_payment(db_session, manager, first.payment_id, today=BEFORE_DUE)
    charge = await _charge(db_session, manager, charge_id)
    assert charge.status == UnitChargeStatus.PENDING
    assert charge.amount_paid == Decimal("0.00")

    ledger = await _unit_ledger(db_session, hoa.unit_ids[0])
    reversals = [e for e in ledger if e.category == "PaymentReversal"]
    assert [Decimal(e.debit) for e in reversals] == [Decimal("250.00"), Decimal("200.00")]
    assert Decimal(ledger[-1].balance_after) == Decimal("450.00")

    with pytest.raises(ConflictError):
        await service.cancel_payment(db_session, manager, first.payment_id)
    actions = (await db_session.execute(select(AuditLog.action).order_by(AuditLog.created_at))).scalars().all()
    assert actions.count("CancelManualPayment") == 2


async def _unit_credit(db: AsyncSession, manager, unit_id) -> Decimal:
    payments = await service.list_unit_payments(db, manager, unit_id)
    return sum((p.unallocated_amount for p in payments if p.status == PaymentStatus.SUCCEEDED), Decimal("0"))


@pytest.mark.asyncio
async def test_cancel_moves_unit_credit_onto_reopened_charge(db_session: AsyncSession, manager, hoa, charge_id) -> None:
    unit_id = hoa.unit_ids[0]
    manual = await service.add_manual_payment(
        db_session, manager, charge_id, ManualPaymentRequest(paid_amount=Decimal("450")), today=BEFORE_DUE
    )
    advance = await service.record_payment(
        db_session, manager, PaymentCreate(unit_id=unit_id, amount=Decimal("450")), today=BEFORE_DUE
    )
    assert advance.unallocated_amount == Decimal("450.00")

    await service.cancel_payment(db_session, manager, manual.payment_id, today=BEFORE_DUE)

    charge = await _charge(db_session, manager, charge_id)
    assert charge.status == UnitChargeStatus.PAID
    assert charge.balance == Decimal("0.00")
    assert await _unit_credit(db_session, manager, unit_id) == Decimal("0.00")


@pytest.mark.asyncio
async def test_downward_edit_moves_unit_credit_onto_charge(db_session: AsyncSession, manager, hoa, charge_id) -> None:
    unit_id = hoa.unit_ids[0]
    manual = await service.add_manual_payment(
        db_session, manager, charge_id, ManualPaymentRequest(paid_amount=Decimal("450")), today=BEFORE_DUE
    )
    await service.record_payment(
        db_session, manager, PaymentCreate(unit_id=unit_id, amount=Decimal("100")), today=BEFORE_DUE
    )

    await service.edit_manual_payment(
        db_session, manager, manual.payment_id, ManualPaymentRequest(paid_amount=Decimal("300")), today=BEFORE_DUE
    )

    charge = await _charge(db_session, manager, charge_id)
    assert charge.amount_paid == Decimal("400.00")
    assert charge.status == UnitChargeStatus.PARTIALLY_PAID
    assert await _unit_credit(db_session, manager, unit_id) == Decimal("0.00")
