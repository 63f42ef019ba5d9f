"""
Tests for spend reporting through ProcurementService.

Validates:
- Totals, averages, and the vendor / category / month rollups
- Cancelled orders and out-of-range order dates are excluded
- Report freshness: cached copies are served only until fresh_until,
  and a committed write through the service clears the cache
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from procure_kernel.exceptions import ValidationError
from procure_modules.procurement import (
    POStatus,
    ProcurementConfig,
    ProcurementService,
    SpendReportCache,
)
from tests.conftest import ACTIVE_VENDOR, BUYER_ID, PROJECT, SECOND_VENDOR, STOREKEEPER_ID

JAN_START, JAN_END = date(2024, 1, 1), date(2024, 1, 31)
FEB_END = date(2024, 2, 29)

CACHED = ProcurementConfig.from_dict({"report_freshness_seconds": 60})


def _electrical_order(service):
    """V-2 order: 130.00 + 23.40 tax = 153.40, 118.00 of it electrical."""
    return service.create_order(
        vendor_id=SECOND_VENDOR,
        project_id=PROJECT,
        lines=[
            {"item_name": "Cable 4mm", "ordered_quantity": 4, "unit_price": "25.00",
             "category": "electrical"},
            {"item_name": "Conduit", "ordered_quantity": 10, "unit_price": "3.00"},
        ],
        actor_id=BUYER_ID,
        issue=True,
    )


def _small_order(service, order_date):
    """V-1 order: 10.00 + 1.80 tax = 11.80."""
    return service.create_order(
        vendor_id=ACTIVE_VENDOR,
        project_id=PROJECT,
        lines=[{"item_name": "Gloves", "ordered_quantity": 1, "unit_price": "10.00"}],
        actor_id=BUYER_ID,
        terms={"order_date": order_date},
    )


@pytest.fixture
def spend_orders(service, three_line_order):
    """
    Two January orders worth 218.30, one cancelled January order, and one
    February order worth 11.80.
    """
    electrical = _electrical_order(service)
    cancelled = _small_order(service, date(2024, 1, 20))
    service.cancel_order(cancelled.id, actor_id=BUYER_ID, reason="Duplicate")
    february = _small_order(service, date(2024, 2, 10))
    return three_line_order, electrical, february


class TestSpendSummary:

    def test_january(self, service, spend_orders):
        report = service.spend_summary(JAN_START, JAN_END)
        assert report.start_date == JAN_START
        assert report.end_date == JAN_END
        assert report.total_spend == Decimal("218.30")
        assert report.order_count == 2
        assert report.average_order_value == Decimal("109.15")

        assert [(v.vendor_id, v.spend, v.order_count) for v in report.by_vendor] == [
            (SECOND_VENDOR, Decimal("153.40"), 1),
            (ACTIVE_VENDOR, Decimal("64.90"), 1),
        ]
        assert report.by_vendor[0].vendor_name == "Northside Electrical"
        assert report.by_category == {
            "electrical": Decimal("118.00"),
            "materials": Decimal("64.90"),
            "uncategorized": Decimal("35.40"),
        }
        assert report.by_month == {"2024-01": Decimal("218.30")}

    def test_two_months(self, service, spend_orders):
        report = service.spend_summary(JAN_START, FEB_END)
        assert report.total_spend == Decimal("230.10")
        assert report.order_count == 3
        assert report.average_order_value == Decimal("76.70")
        assert report.by_month == {
            "2024-01": Decimal("218.30"),
            "2024-02": Decimal("11.80"),
        }
        assert report.by_category["materials"] == Decimal("76.70")
        assert sum(report.by_category.values()) == report.total_spend
        assert sum(v.spend for v in report.by_vendor) == report.total_spend

    def test_range_bounds_inclusive(self, service, spend_orders):
        report = service.spend_summary(date(2024, 2, 10), date(2024, 2, 10))
        assert report.order_count == 1
        assert report.total_spend == Decimal("11.80")

    def test_received_value(self, service, spend_orders):
        rebar_order = spend_orders[0]
        service.receive(
            rebar_order.id,
            [{"po_line_id": rebar_order.lines[0].id, "quantity_received": 4}],
            actor_id=STOREKEEPER_ID,
        )
        report = service.spend_summary(JAN_START, JAN_END)
        by_id = {v.vendor_id: v for v in report.by_vendor}
        assert by_id[ACTIVE_VENDOR].received_value == Decimal("16.00")
        assert by_id[SECOND_VENDOR].received_value == Decimal("0")

    def test_recent_orders_newest_first(self, service, spend_orders):
        rebar, electrical, february = spend_orders
        report = service.spend_summary(JAN_START, FEB_END)
        assert [
            (o.po_id, o.po_number, o.vendor_name, o.order_date, o.status, o.total_amount)
            for o in report.recent_orders
        ] == [
            (february.id, "PO-20240115-004", "Acme Building Supply", date(2024, 2, 10),
             POStatus.DRAFT, Decimal("11.80")),
            (electrical.id, "PO-20240115-002", "Northside Electrical", date(2024, 1, 15),
             POStatus.SENT, Decimal("153.40")),
            (rebar.id, "PO-20240115-001", "Acme Building Supply", date(2024, 1, 15),
             POStatus.SENT, Decimal("64.90")),
        ]

    def test_recent_orders_capped_at_five(self, service, spend_orders):
        extra = [_small_order(service, date(2024, 1, day)) for day in (16, 17, 18)]
        report = service.spend_summary(JAN_START, FEB_END)
        assert report.order_count == 6
        assert [o.po_id for o in report.recent_orders] == [
            spend_orders[2].id, extra[2].id, extra[1].id, extra[0].id, spend_orders[1].id,
        ]

    def test_empty_range(self, service, spend_orders):
        report = service.spend_summary(date(2023, 1, 1), date(2023, 12, 31))
        assert report.total_spend == Decimal("0")
        assert report.order_count == 0
        assert report.average_order_value == Decimal("0")
        assert report.by_vendor == ()
        assert report.by_category == {}
        assert report.by_month == {}
        assert report.recent_orders == ()

    def test_inverted_range_rejected(self, service):
        with pytest.raises(ValidationError, match="after end_date"):
            service.spend_summary(JAN_END, JAN_START)


class TestReportFreshness:

    def test_uncached_by_default(self, service, deterministic_clock):
        first = service.spend_summary(JAN_START, JAN_END)
        second = service.spend_summary(JAN_START, JAN_END)
        assert first.generated_at == deterministic_clock.now()
        assert first.fresh_until == first.generated_at
        assert second is not first

    def test_cached_until_fresh_until(
        self, make_service, three_line_order, session_factory, directory,
        deterministic_clock, lock_registry,
    ):
        reader = make_service(CACHED)
        first = reader.spend_summary(JAN_START, JAN_END)
        assert first.fresh_until == first.generated_at + timedelta(seconds=60)

        # a writer in another process does not share this cache
        writer_session = session_factory()
        try:
            writer = ProcurementService(
                writer_session,
                directory,
                clock=deterministic_clock,
                config=CACHED,
                lock_registry=lock_registry,
                report_cache=SpendReportCache(),
            )
            _electrical_order(writer)
        finally:
            writer_session.close()

        deterministic_clock.advance(59)
        assert reader.spend_summary(JAN_START, JAN_END) is first

        deterministic_clock.advance(1)
        refreshed = reader.spend_summary(JAN_START, JAN_END)
        assert refreshed.total_spend == Decimal("218.30")
        assert refreshed.generated_at > first.generated_at

    def test_write_through_service_clears_cache(self, make_service, three_line_order):
        reader = make_service(CACHED)
        first = reader.spend_summary(JAN_START, JAN_END)
        assert first.total_spend == Decimal("64.90")

        _electrical_order(make_service(CACHED))

        refreshed = reader.spend_summary(JAN_START, JAN_END)
        assert refreshed is not first
        assert refreshed.total_spend == Decimal("218.30")

    def test_ranges_cached_separately(self, make_service, spend_orders):
        reader = make_service(CACHED)
        january = reader.spend_summary(JAN_START, JAN_END)
        both = reader.spend_summary(JAN_START, FEB_END)
        assert january.total_spend != both.total_spend
        assert reader.spend_summary(JAN_START, JAN_END) is january
