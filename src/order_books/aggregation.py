"""Fold classified orders into report totals."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal

from order_books.classifier import ChargeBreakdown
from order_books.models import Order

ZERO = Decimal("0")


@dataclass(frozen=True)
class ReportTotals:
    """Totals for one report run.

    Always satisfies:
        gross_sales == net_sales + discounts
        taxable_sales + tax_exempt_sales == net_sales
        net_deposit == total_collected - processing_fees - refunds
    """

    gross_sales: Decimal = ZERO
    discounts: Decimal = ZERO
    net_sales: Decimal = ZERO
    taxable_sales: Decimal = ZERO
    tax_exempt_sales: Decimal = ZERO
    sales_tax_collected: Decimal = ZERO
    tips: Decimal = ZERO
    processing_fees: Decimal = ZERO
    total_collected: Decimal = ZERO
    refunds: Decimal = ZERO
    net_deposit: Decimal = ZERO
    order_count: int = 0
    tax_exempt_order_count: int = 0


class TotalsAccumulator:
    """Single-pass accumulator behind ``aggregate``.

    Only sums are kept, so the result does not depend on the order in which
    pairs are added.
    """

    def __init__(self) -> None:
        self._gross_sales = ZERO
        self._discounts = ZERO
        self._net_sales = ZERO
        self._taxable_sales = ZERO
        self._tax_exempt_sales = ZERO
        self._sales_tax = ZERO
        self._tips = ZERO
        self._processing_fees = ZERO
        self._total_collected = ZERO
        self._refunds = ZERO
        self._order_count = 0
        self._tax_exempt_order_count = 0

    def add(self, order: Order, breakdown: ChargeBreakdown) -> None:
        if order.is_realized_sale:
            self._gross_sales += breakdown.subtotal + breakdown.discount
            self._discounts += breakdown.discount
            self._net_sales += breakdown.subtotal
            self._sales_tax += breakdown.tax
            self._tips += breakdown.tip
            self._processing_fees += breakdown.processing_fee
            self._total_collected += breakdown.total
            # tax_exempt already reflects the configured ExemptionPolicy
            if breakdown.tax_exempt:
                self._tax_exempt_sales += breakdown.subtotal
                self._tax_exempt_order_count += 1
            else:
                self._taxable_sales += breakdown.subtotal
            self._order_count += 1
        elif order.is_refund:
            self._refunds += breakdown.total

    def result(self) -> ReportTotals:
        return ReportTotals(
            gross_sales=self._gross_sales,
            discounts=self._discounts,
            net_sales=self._net_sales,
            taxable_sales=self._taxable_sales,
            tax_exempt_sales=self._tax_exempt_sales,
            sales_tax_collected=self._sales_tax,
            tips=self._tips,
            processing_fees=self._processing_fees,
            total_collected=self._total_collected,
            refunds=self._refunds,
            net_deposit=self._total_collected - self._processing_fees - self._refunds,
            order_count=self._order_count,
            tax_exempt_order_count=self._tax_exempt_order_count,
        )


def aggregate(pairs: Iterable[tuple[Order, ChargeBreakdown]]) -> ReportTotals:
    """Fold (order, breakdown) pairs into ReportTotals.

    An empty input yields all-zero totals.
    """
    accumulator = TotalsAccumulator()
    for order, breakdown in pairs:
        accumulator.add(order, breakdown)
    return accumulator.result()
