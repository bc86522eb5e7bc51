"""Per-order charge classification.

Orders encode the same monetary facts in several legacy ways: a tip may be a
fee line or a tagged attribute, the processor fee is a tagged attribute, and
tax exemption is either an explicit flag or merely implied by zero tax. This
module resolves those encodings into a single ``ChargeBreakdown`` per order.

Missing or unparseable amounts default to zero instead of failing the whole
report. That keeps a report available when a few records are dirty, at the
cost of possibly understating totals, so every such default is recorded as a
``ClassificationAnomaly`` on the breakdown for the caller to surface.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum

from order_books.models import Order, RawAmount

ZERO = Decimal("0")

TIP_TAG_KEYS = ("tip_amount", "_tip_amount")
PROCESSING_FEE_TAG_KEY = "_stripe_fee"
TAX_EXEMPT_TAG_KEY = "tax_exempt"


class TipSource(str, Enum):
    """Where a tip amount was found."""

    EXPLICIT = "explicit"  # canonical tip_total field
    LEGACY_FEE_LINE = "legacy_fee_line"
    LEGACY_ATTRIBUTE = "legacy_attribute"
    NONE = "none"


class ExemptionPolicy(str, Enum):
    """How an order is bucketed as tax-exempt.

    ``flag_or_zero_tax`` treats any zero-tax order as exempt. Zero tax can
    also mean zero-rated items, so the stricter policies are available.
    """

    FLAG_OR_ZERO_TAX = "flag_or_zero_tax"
    FLAG_ONLY = "flag_only"
    ZERO_TAX_ONLY = "zero_tax_only"

    def applies(self, exempt_flag: bool, zero_tax: bool) -> bool:
        if self is ExemptionPolicy.FLAG_ONLY:
            return exempt_flag
        if self is ExemptionPolicy.ZERO_TAX_ONLY:
            return zero_tax
        return exempt_flag or zero_tax


class AnomalyKind(str, Enum):
    """Kinds of data problems found while classifying an order."""

    UNPARSEABLE_AMOUNT = "unparseable_amount"
    NEGATIVE_SUBTOTAL = "negative_subtotal"


@dataclass(frozen=True)
class ClassificationAnomaly:
    """A data problem that was defaulted rather than raised."""

    order_id: int | str
    kind: AnomalyKind
    field: str
    raw_value: str = ""

    def describe(self) -> str:
        if self.kind is AnomalyKind.NEGATIVE_SUBTOTAL:
            return f"order {self.order_id}: negative subtotal {self.raw_value}"
        return (
            f"order {self.order_id}: {self.field} value {self.raw_value!r} "
            "is not numeric, counted as 0.00"
        )


@dataclass(frozen=True)
class TipResolution:
    """Resolved tip amount together with the encoding it came from."""

    amount: Decimal
    source: TipSource


@dataclass(frozen=True)
class ChargeBreakdown:
    """Monetary decomposition of one order.

    ``subtotal`` is always ``total - tax - tip`` in that order and is never
    clamped, so a negative value here means the source data is inconsistent.
    """

    order_id: int | str
    total: Decimal
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    tip: Decimal
    processing_fee: Decimal
    tax_exempt: bool
    exempt_flag: bool = False
    zero_tax: bool = False
    tip_source: TipSource = TipSource.NONE
    anomalies: tuple[ClassificationAnomaly, ...] = ()


class _AmountReader:
    """Parses raw amounts for one order and collects anomalies on the way."""

    def __init__(self, order_id: int | str):
        self._order_id = order_id
        self.anomalies: list[ClassificationAnomaly] = []

    def read(self, value: RawAmount, field: str) -> Decimal:
        if value is None or isinstance(value, bool):
            return ZERO
        if isinstance(value, str) and not value.strip():
            return ZERO
        try:
            amount = Decimal(str(value).strip())
        except InvalidOperation:
            amount = None
        if amount is None or not amount.is_finite():
            self.anomalies.append(
                ClassificationAnomaly(
                    order_id=self._order_id,
                    kind=AnomalyKind.UNPARSEABLE_AMOUNT,
                    field=field,
                    raw_value=str(value),
                )
            )
            return ZERO
        return amount


def _is_present(value: object) -> bool:
    return value is not None and not (isinstance(value, str) and not value.strip())


def resolve_tip(order: Order, reader: _AmountReader) -> TipResolution:
    """Find the tip on an order, first match wins.

    A fee line named like "Stripe Tip Surcharge" is a processor charge, not a
    tip, so fee lines mentioning "stripe" are skipped.
    """
    if _is_present(order.tip_total):
        return TipResolution(reader.read(order.tip_total, "tip_total"), TipSource.EXPLICIT)

    for line in order.fee_lines:
        name = line.name.lower()
        if "tip" in name and "stripe" not in name:
            if _is_present(line.total):
                return TipResolution(
                    reader.read(line.total, f"fee_lines[{line.name}]"),
                    TipSource.LEGACY_FEE_LINE,
                )
            break

    tag = order.find_tag(*TIP_TAG_KEYS)
    if tag is not None and _is_present(tag.value):
        return TipResolution(reader.read(tag.value, tag.key), TipSource.LEGACY_ATTRIBUTE)

    return TipResolution(ZERO, TipSource.NONE)


def classify_order(
    order: Order,
    policy: ExemptionPolicy = ExemptionPolicy.FLAG_OR_ZERO_TAX,
) -> ChargeBreakdown:
    """Decompose one order into a ChargeBreakdown.

    Reads nothing but the given order, so orders can be classified in any
    order or concurrently.
    """
    reader = _AmountReader(order.id)

    total = reader.read(order.total, "total")
    tax = reader.read(order.total_tax, "total_tax")
    discount = reader.read(order.discount_total, "discount_total")
    tip = resolve_tip(order, reader)

    fee_tag = order.find_tag(PROCESSING_FEE_TAG_KEY)
    processing_fee = reader.read(fee_tag.value, fee_tag.key) if fee_tag else ZERO

    exempt_tag = order.find_tag(TAX_EXEMPT_TAG_KEY)
    # Only the exact value "yes" marks an order as formally exempt
    exempt_flag = exempt_tag is not None and exempt_tag.value == "yes"
    zero_tax = tax == ZERO

    subtotal = total - tax - tip.amount
    if subtotal < ZERO:
        reader.anomalies.append(
            ClassificationAnomaly(
                order_id=order.id,
                kind=AnomalyKind.NEGATIVE_SUBTOTAL,
                field="subtotal",
                raw_value=str(subtotal),
            )
        )

    return ChargeBreakdown(
        order_id=order.id,
        total=total,
        subtotal=subtotal,
        discount=discount,
        tax=tax,
        tip=tip.amount,
        processing_fee=processing_fee,
        tax_exempt=policy.applies(exempt_flag, zero_tax),
        exempt_flag=exempt_flag,
        zero_tax=zero_tax,
        tip_source=tip.source,
        anomalies=tuple(reader.anomalies),
    )
