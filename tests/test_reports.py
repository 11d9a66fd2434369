from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from hoa_backend.api.v1.hoa import service as hoa_service
from hoa_backend.api.v1.hoa.schemas import ManualChargeCreate
from hoa_backend.api.v1.ledger import service as ledger_service
from hoa_backend.api.v1.ledger.schemas import ExpenseCreate
from hoa_backend.api.v1.payments import service as payment_service
from hoa_backend.api.v1.payments.schemas import ManualPaymentRequest, PaymentCreate
from hoa_backend.api.v1.reports import service
from hoa_backend.core.enums import CollectionRowStatus, ExpenseCategory
from hoa_backend.core.exceptions import NotFoundError, PermissionDeniedError
from hoa_backend.core.models import Building, Unit

from conftest import AFTER_DUE, BEFORE_DUE, PERIOD

AS_OF = date(2026, 3, 20)


async def _charge_id(db: AsyncSession, manager, unit_id, period: str = PERIOD):
    charges = await hoa_service.list_unit_charges(db, manager, unit_id)
    return next(c.id for c in charges if c.period == period)


@pytest.fixture()
async def collected(db_session: AsyncSession, manager, hoa):
    """Unit 1 paid in full, unit 2 paid 200, unit 3 nothing, unit 4 added after generation."""
    await hoa_service.generate_charges(db_session, manager, hoa.plan_id, PERIOD, today=BEFORE_DUE)
    await payment_service.add_manual_payment(
        db_session, manager, await _charge_id(db_session, manager, hoa.unit_ids[0]),
        ManualPaymentRequest(paid_amount=Decimal("450")), today=BEFORE_DUE,
    )
    await payment_service.add_manual_payment(
        db_session, manager, await _charge_id(db_session, manager, hoa.unit_ids[1]),
        ManualPaymentRequest(paid_amount=Decimal("200")), today=BEFORE_DUE,
    )
    db_session.add(Unit(building_id=hoa.building_id, unit_number="4", is_active=True))
    await db_session.commit()
    return hoa


@pytest.mark.asyncio
async def test_collection_status(db_session: AsyncSession, manager, collected) -> None:
    report = await service.collection_status(
        db_session, manager, collected.building_id, PERIOD, today=BEFORE_DUE
    )

    assert [(r.unit_number, r.status) for r in report.rows] == [
        ("1", CollectionRowStatus.PAID),
        ("2", CollectionRowStatus.PARTIAL),
        ("3", CollectionRowStatus.UNPAID),
    ]
    assert report.rows[1].balance == Decimal("250.00")
    assert report.rows[0].payer_display_name == "Tara Tenant"
    assert report.rows[0].last_payment_date is not None
    assert report.rows[2].last_payment_date is None

    summary = report.summary
    assert summary.total_units == 4
    assert summary.generated_count == 3
    assert (summary.paid_count, summary.partial_count, summary.unpaid_count) == (1, 1, 1)
    assert summary.total_due == Decimal("1350.00")
    assert summary.total_paid == Decimal("650.00")
    assert summary.total_outstanding == Decimal("700.00")
    assert summary.collection_rate_percent == Decimal("48.1")


@pytest.mark.asyncio
async def test_collection_status_after_due_and_not_generated(db_session: AsyncSession, manager, collected) -> None:
    report = await service.collection_status(
        db_session, manager, collected.building_id, PERIOD, include_not_generated=True, today=AFTER_DUE
    )

    statuses = {r.unit_number: r.status for r in report.rows}
    assert statuses == {
        "1": CollectionRowStatus.PAID,
        "2": CollectionRowStatus.PARTIAL,
        "3": CollectionRowStatus.OVERDUE,
        "4": CollectionRowStatus.NOT_GENERATED,
    }
    assert report.summary.overdue_count == 1
    assert report.summary.generated_count == 3
    assert report.summary.total_due == Decimal("1350.00")


@pytest.mark.asyncio
async def test_collection_rate_without_charges(db_session: AsyncSession, manager, hoa) -> None:
    report = await service.collection_status(db_session, manager, hoa.building_id, "2026-07", today=BEFORE_DUE)

    assert report.rows == []
    assert report.summary.total_due == Decimal("0.00")
    assert report.summary.collection_rate_percent == Decimal("0")


@pytest.mark.asyncio
async def test_collection_fully_paid_is_hundred_percent(db_session: AsyncSession, manager, hoa) -> None:
    await hoa_service.generate_charges(db_session, manager, hoa.plan_id, PERIOD, today=BEFORE_DUE)
    for unit_id in hoa.unit_ids:
        await payment_service.add_manual_payment(
            db_session, manager, await _charge_id(db_session, manager, unit_id),
            ManualPaymentRequest(paid_amount=Decimal("450")), today=BEFORE_DUE,
        )

    report = await service.collection_status(db_session, manager, hoa.building_id, PERIOD, today=AFTER_DUE)

    assert report.summary.collection_rate_percent == Decimal("100.0")
    assert report.summary.total_outstanding == Decimal("0.00")


@pytest.mark.asyncio
async def test_collection_unit_detail(db_session: AsyncSession, manager, collected) -> None:
    detail = await service.collection_unit_detail(
        db_session, manager, collected.building_id, collected.unit_ids[1], PERIOD
    )
    assert detail.charge.amount_paid == Decimal("200.00")
    assert [p.amount for p in detail.payments] == [Decimal("200.00")]
    assert detail.payments[0].entered_by_name == "Max Manager"

    with pytest.raises(NotFoundError):
        await service.collection_unit_detail(db_session, manager, collected.building_id, collected.unit_ids[1], "2026-08")


@pytest.mark.asyncio
async def test_aging_single_charge_due_on_the_fifth(db_session: AsyncSession, manager, hoa) -> None:
    await hoa_service.create_manual_charge(
        db_session,
        manager,
        ManualChargeCreate(
            unit_id=hoa.unit_ids[0],
            fee_plan_id=hoa.plan_id,
            period=PERIOD,
            amount_due=Decimal("450"),
            due_date=date(2026, 3, 5),
        ),
        today=date(2026, 3, 1),
    )

    report = await service.aging_report(db_session, manager, hoa.building_id, as_of=AS_OF)

    assert len(report.rows) == 1
    row = report.rows[0]
    assert row.days_1_30 == Decimal("450.00")
    assert row.current == row.days_31_60 == row.days_61_90 == row.days_90_plus == Decimal("0.00")
    assert row.total == report.grand_total == Decimal("450.00")


@pytest.mark.asyncio
async def test_aging_spreads_periods_over_buckets(db_session: AsyncSession, manager, hoa) -> None:
    for period in ("2025-12", "2026-01", "2026-02", "2026-03", "2026-04"):
        await hoa_service.generate_charges(db_session, manager, hoa.plan_id, period, today=date(2025, 12, 1))
    # Oldest-first allocation leaves 250 on the December charge
    await payment_service.record_payment(
        db_session, manager, PaymentCreate(unit_id=hoa.unit_ids[1], amount=Decimal("200")), today=AS_OF
    )

    report = await service.aging_report(db_session, manager, hoa.building_id, as_of=AS_OF)

    rows = {r.unit_number: r for r in report.rows}
    second = rows["2"]
    assert second.days_90_plus == Decimal("250.00")
    assert second.days_61_90 == Decimal("450.00")
    assert second.days_31_60 == Decimal("450.00")
    assert second.days_1_30 == Decimal("450.00")
    assert second.current == Decimal("450.00")
    for row in report.rows:
        assert row.total == row.current + row.days_1_30 + row.days_31_60 + row.days_61_90 + row.days_90_plus
    assert second.total == Decimal("2050.00")
    assert report.grand_total == Decimal("6550.00")


@pytest.mark.asyncio
async def test_income_expenses(db_session: AsyncSession, manager, hoa) -> None:
    await hoa_service.generate_charges(db_session, manager, hoa.plan_id, PERIOD, today=BEFORE_DUE)
    await payment_service.add_manual_payment(
        db_session, manager, await _charge_id(db_session, manager, hoa.unit_ids[0]),
        ManualPaymentRequest(paid_amount=Decimal("450")), today=BEFORE_DUE,
    )
    removed = await payment_service.add_manual_payment(
        db_session, manager, await _charge_id(db_session, manager, hoa.unit_ids[1]),
        ManualPaymentRequest(paid_amount=Decimal("200")), today=BEFORE_DUE,
    )
    await payment_service.cancel_payment(db_session, manager, removed.payment_id, today=BEFORE_DUE)
    await ledger_service.record_expense(
        db_session, manager, hoa.building_id,
        ExpenseCreate(category=ExpenseCategory.CLEANING, amount=Decimal("120"), description="March cleaning"),
    )
    await ledger_service.record_expense(
        db_session, manager, hoa.building_id,
        ExpenseCreate(category=ExpenseCategory.ELECTRICITY, amount=Decimal("80")),
    )

    report = await service.income_expenses(db_session, manager, hoa.building_id)

    assert report.total_income == Decimal("450.00")
    assert report.total_expenses == Decimal("200.00")
    assert report.net_balance == Decimal("250.00")
    assert [(c.category, c.amount) for c in report.expenses_by_category] == [
        ("Cleaning", Decimal("120.00")),
        ("Electricity", Decimal("80.00")),
    ]
    # The cancelled 200 nets against the fees it was paid toward
    assert [(c.category, c.amount) for c in report.income_by_category] == [
        ("HOAMonthlyFees", Decimal("450.00")),
    ]
    assert len(report.monthly_breakdown) == 1
    assert report.monthly_breakdown[0].net == Decimal("250.00")


@pytest.mark.asyncio
async def test_dashboard_is_scoped_to_managed_buildings(
    db_session: AsyncSession, admin, manager, other_manager, hoa
) -> None:
    db_session.add(Building(name="Another Block"))
    await db_session.commit()

    assert [s.building_name for s in await service.dashboard_collection(db_session, manager, PERIOD)] == ["Palm Court"]
    assert await service.dashboard_collection(db_session, other_manager, PERIOD) == []
    assert len(await service.dashboard_collection(db_session, admin, PERIOD)) == 2
    with pytest.raises(PermissionDeniedError):
        await service.aging_report(db_session, other_manager, hoa.building_id)
