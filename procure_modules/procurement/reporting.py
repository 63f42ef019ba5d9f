"""
ReportingAggregator -- read-only spend rollups.

Responsibility:
    Selects non-cancelled purchase orders whose order date falls in a range
    and hands them to ``procure_engines.spend.summarize_spend``.  Vendor
    names and categories come from the reference directory.  The newest
    ``RECENT_ORDER_COUNT`` of those orders are listed on the report as well.

Freshness:
    Every report carries ``generated_at`` and ``fresh_until``.  With
    ``report_freshness_seconds > 0`` a report may be served from
    ``SpendReportCache`` until ``fresh_until``, never after.  Any committed
    write through ``ProcurementService`` clears the cache.
"""

import threading
from datetime import date, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from procure_engines.spend import LineSpendInput, OrderSpendInput, summarize_spend
from procure_kernel.domain.clock import Clock
from procure_kernel.exceptions import ValidationError
from procure_kernel.logging_config import get_logger
from procure_kernel.selectors.base import BaseSelector
from procure_modules.procurement.config import ProcurementConfig
from procure_modules.procurement.models import POStatus, RecentOrder, SpendReport
from procure_modules.procurement.orm import PurchaseOrderModel
from procure_modules.procurement.references import ReferenceDirectory

logger = get_logger("modules.procurement.reporting")

RECENT_ORDER_COUNT = 5


class SpendReportCache:
    """Thread-safe store of recent reports keyed by date range."""

    def __init__(self):
        self._lock = threading.Lock()
        self._reports: dict[tuple[date, date], SpendReport] = {}

    def get(self, start_date: date, end_date: date, now) -> SpendReport | None:
        with self._lock:
            report = self._reports.get((start_date, end_date))
            if report is None:
                return None
            if now >= report.fresh_until:
                del self._reports[(start_date, end_date)]
                return None
            return report

    def put(self, report: SpendReport) -> None:
        with self._lock:
            self._reports[(report.start_date, report.end_date)] = report

    def invalidate(self) -> None:
        with self._lock:
            self._reports.clear()


class ReportingAggregator(BaseSelector[PurchaseOrderModel]):
    """Spend totals by vendor, category, and month."""

    def __init__(
        self,
        session: Session,
        directory: ReferenceDirectory,
        clock: Clock,
        config: ProcurementConfig,
        cache: SpendReportCache,
    ):
        super().__init__(session)
        self._directory = directory
        self._clock = clock
        self._config = config
        self._cache = cache

    def spend_summary(self, start_date: date, end_date: date) -> SpendReport:
        """
        Spend over non-cancelled orders with ``start_date <= order_date <= end_date``.

        Raises:
            ValidationError: ``start_date`` is after ``end_date``.
        """
        if start_date > end_date:
            raise ValidationError(
                f"start_date {start_date} is after end_date {end_date}"
            )

        now = self._clock.now()
        if self._config.report_freshness_seconds > 0:
            cached = self._cache.get(start_date, end_date, now)
            if cached is not None:
                logger.debug(
                    "spend_report_cache_hit",
                    extra={"start_date": start_date, "end_date": end_date},
                )
                return cached

        orders = self.session.execute(
            select(PurchaseOrderModel)
            .where(PurchaseOrderModel.status != POStatus.CANCELLED.value)
            .where(PurchaseOrderModel.order_date >= start_date)
            .where(PurchaseOrderModel.order_date <= end_date)
            .order_by(PurchaseOrderModel.order_date, PurchaseOrderModel.po_number)
        ).scalars().all()

        inputs = [self._to_input(order) for order in orders]
        rollup = summarize_spend(orders=inputs)
        recent = [
            RecentOrder(
                po_id=order.id,
                po_number=order.po_number,
                vendor_id=order.vendor_id,
                vendor_name=item.vendor_name,
                order_date=order.order_date,
                status=POStatus(order.status),
                total_amount=order.total_amount,
            )
            for order, item in zip(reversed(orders), reversed(inputs))
        ][:RECENT_ORDER_COUNT]
        report = SpendReport(
            start_date=start_date,
            end_date=end_date,
            total_spend=rollup.total_spend,
            order_count=rollup.order_count,
            average_order_value=rollup.average_order_value,
            by_vendor=rollup.by_vendor,
            by_category={c.category: c.spend for c in rollup.by_category},
            by_month={m.month: m.spend for m in rollup.by_month},
            recent_orders=tuple(recent),
            generated_at=now,
            fresh_until=now + timedelta(seconds=self._config.report_freshness_seconds),
        )
        if self._config.report_freshness_seconds > 0:
            self._cache.put(report)

        logger.info(
            "spend_report_generated",
            extra={
                "start_date": start_date,
                "end_date": end_date,
                "order_count": report.order_count,
                "total_spend": str(report.total_spend),
            },
        )
        return report

    def _to_input(self, order: PurchaseOrderModel) -> OrderSpendInput:
        vendor = self._directory.get_vendor(order.vendor_id)
        return OrderSpendInput(
            order_id=str(order.id),
            vendor_id=order.vendor_id,
            vendor_name=vendor.name if vendor else order.vendor_id,
            vendor_category=vendor.category if vendor else None,
            order_date=order.order_date,
            total_amount=order.total_amount,
            tax_amount=order.tax_amount,
            lines=tuple(
                LineSpendInput(
                    category=line.category,
                    line_total=line.unit_price * line.ordered_quantity,
                    received_value=line.unit_price * line.received_quantity,
                )
                for line in order.lines
            ),
        )
