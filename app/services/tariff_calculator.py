"""
Tariff Calculator for booking lines.

This module handles:
1. Chargeable weight (actual vs declared vs volumetric)
2. Base amount per charge basis (weight, unit, fixed, whichever higher)
3. Minimum charge floor
4. Loading / unloading charges
5. Fuel, urgency and fragility surcharges, plus manual adjustments
6. Bulk and loyalty discounts
7. GST
8. Aggregation of lines into the booking total

Everything is Decimal. Each component is rounded half-up to paise as it is
produced, so stored components always add up to the stored line total.
"""
from dataclasses import dataclass, fields
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Dict, Iterable, Optional
import uuid

from app.config import settings
from app.core.exceptions import TotalMismatch, ValidationError
from app.models.booking import RateSource, RateType, Urgency
from app.models.rate_contract import ChargeBasis


PAISE = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")

# Quantity thresholds -> bulk discount percentage, highest first
BULK_DISCOUNT_TIERS = (
    (50, Decimal("10")),
    (10, Decimal("5")),
)


def to_money(value) -> Decimal:
    """Round to two decimals, half-up."""
    return Decimal(str(value)).quantize(PAISE, rounding=ROUND_HALF_UP)


def percent_of(amount: Decimal, percentage: Decimal) -> Decimal:
    return to_money(amount * Decimal(str(percentage)) / HUNDRED)


# ============================================
# VALUE OBJECTS
# ============================================

@dataclass(frozen=True)
class TariffPolicy:
    """Pricing knobs. Defaults come from settings."""
    tax_percentage: Decimal
    fuel_surcharge_percentage: Decimal
    urgency_surcharge_percentages: Dict[str, Decimal]
    fragile_surcharge_percentage: Decimal
    default_loading_charge_per_unit: Decimal
    default_unloading_charge_per_unit: Decimal
    special_handling_multiplier: Decimal
    volumetric_divisor: int

    @classmethod
    def from_settings(cls, config=settings) -> "TariffPolicy":
        return cls(
            tax_percentage=config.TAX_PERCENTAGE,
            fuel_surcharge_percentage=config.FUEL_SURCHARGE_PERCENTAGE,
            urgency_surcharge_percentages={
                Urgency.STANDARD.value: ZERO,
                Urgency.EXPRESS.value: config.EXPRESS_SURCHARGE_PERCENTAGE,
                Urgency.URGENT.value: config.URGENT_SURCHARGE_PERCENTAGE,
            },
            fragile_surcharge_percentage=config.FRAGILE_SURCHARGE_PERCENTAGE,
            default_loading_charge_per_unit=config.DEFAULT_LOADING_CHARGE_PER_UNIT,
            default_unloading_charge_per_unit=config.DEFAULT_UNLOADING_CHARGE_PER_UNIT,
            special_handling_multiplier=config.SPECIAL_HANDLING_MULTIPLIER,
            volumetric_divisor=config.VOLUMETRIC_DIVISOR,
        )


@dataclass(frozen=True)
class ResolvedRate:
    """
    The rate a line is priced at, whatever its origin.

    For the fixed basis rate_per_unit holds the flat amount.
    """
    charge_basis: str
    rate_per_kg: Optional[Decimal] = None
    rate_per_unit: Optional[Decimal] = None
    minimum_charge: Decimal = ZERO
    source: str = RateSource.MANUAL.value
    rate_contract_id: Optional[uuid.UUID] = None
    rate_slab_id: Optional[uuid.UUID] = None
    loyalty_discount_percentage: Decimal = ZERO

    @classmethod
    def manual(cls, rate_type: str, rate_value: Decimal) -> "ResolvedRate":
        """A rate typed in by the booking clerk."""
        if rate_type == RateType.PER_KG.value:
            return cls(charge_basis=ChargeBasis.WEIGHT.value, rate_per_kg=Decimal(str(rate_value)))
        if rate_type == RateType.PER_QUANTITY.value:
            return cls(charge_basis=ChargeBasis.UNIT.value, rate_per_unit=Decimal(str(rate_value)))
        raise ValidationError(f"Unknown rate type '{rate_type}'", {"rate_type": rate_type})

    @classmethod
    def article_base(cls, base_rate: Decimal) -> "ResolvedRate":
        """Standard per-unit rate from the article catalogue."""
        return cls(
            charge_basis=ChargeBasis.UNIT.value,
            rate_per_unit=Decimal(str(base_rate)),
            source=RateSource.ARTICLE_BASE.value,
        )

    @property
    def rate_type(self) -> str:
        if self.charge_basis == ChargeBasis.WEIGHT.value:
            return RateType.PER_KG.value
        return RateType.PER_QUANTITY.value

    @property
    def rate_value(self) -> Decimal:
        if self.charge_basis == ChargeBasis.WEIGHT.value:
            return self.rate_per_kg or ZERO
        return self.rate_per_unit if self.rate_per_unit is not None else (self.rate_per_kg or ZERO)


@dataclass
class LineOptions:
    """Per-line pricing inputs besides the rate itself."""
    urgency: str = Urgency.STANDARD.value
    is_fragile: bool = False
    requires_special_handling: bool = False
    loading_charge_per_unit: Optional[Decimal] = None
    unloading_charge_per_unit: Optional[Decimal] = None
    adjustment_amount: Decimal = ZERO
    loyalty_discount_percentage: Optional[Decimal] = None


@dataclass
class LineBreakdown:
    """Priced line. Field names match BookingArticle columns."""
    charged_weight: Decimal
    base_amount: Decimal
    freight_amount: Decimal
    loading_charges: Decimal
    unloading_charges: Decimal
    surcharge_amount: Decimal
    adjustment_amount: Decimal
    subtotal: Decimal
    discount_amount: Decimal
    taxable_amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass
class BookingTotals:
    line_count: int = 0
    freight_amount: Decimal = ZERO
    discount_amount: Decimal = ZERO
    tax_amount: Decimal = ZERO
    total_amount: Decimal = ZERO


# ============================================
# CHARGE BASIS RULES
# ============================================

BaseAmountRule = Callable[[ResolvedRate, int, Decimal], Decimal]
BASE_AMOUNT_RULES: Dict[str, BaseAmountRule] = {}


def base_amount_rule(basis: ChargeBasis):
    """Register the base amount rule for a charge basis."""
    def decorator(func: BaseAmountRule) -> BaseAmountRule:
        BASE_AMOUNT_RULES[basis.value] = func
        return func
    return decorator


def _require(value: Optional[Decimal], name: str, basis: str) -> Decimal:
    if value is None:
        raise ValidationError(
            f"Charge basis '{basis}' requires {name}",
            {"charge_basis": basis, "missing": name},
        )
    return Decimal(str(value))


@base_amount_rule(ChargeBasis.WEIGHT)
def _weight_amount(rate: ResolvedRate, quantity: int, weight: Decimal) -> Decimal:
    return _require(rate.rate_per_kg, "rate_per_kg", rate.charge_basis) * weight


@base_amount_rule(ChargeBasis.UNIT)
def _unit_amount(rate: ResolvedRate, quantity: int, weight: Decimal) -> Decimal:
    return _require(rate.rate_per_unit, "rate_per_unit", rate.charge_basis) * quantity


@base_amount_rule(ChargeBasis.FIXED)
def _fixed_amount(rate: ResolvedRate, quantity: int, weight: Decimal) -> Decimal:
    return _require(rate.rate_per_unit, "rate_per_unit", rate.charge_basis)


@base_amount_rule(ChargeBasis.WHICHEVER_HIGHER)
def _whichever_higher_amount(rate: ResolvedRate, quantity: int, weight: Decimal) -> Decimal:
    by_weight = _require(rate.rate_per_kg, "rate_per_kg", rate.charge_basis) * weight
    by_unit = _require(rate.rate_per_unit, "rate_per_unit", rate.charge_basis) * quantity
    return max(by_weight, by_unit)


def base_amount(rate: ResolvedRate, quantity: int, weight: Decimal) -> Decimal:
    rule = BASE_AMOUNT_RULES.get(rate.charge_basis)
    if rule is None:
        raise ValidationError(
            f"Unsupported charge basis '{rate.charge_basis}'",
            {"charge_basis": rate.charge_basis, "supported": sorted(BASE_AMOUNT_RULES)},
        )
    return to_money(rule(rate, quantity, Decimal(str(weight))))


# ============================================
# DISCOUNTS
# ============================================

def bulk_discount_percentage(quantity: int) -> Decimal:
    for threshold, percentage in BULK_DISCOUNT_TIERS:
        if quantity >= threshold:
            return percentage
    return ZERO


def calculate_discount(
    subtotal: Decimal,
    quantity: int,
    loyalty_percentage: Decimal = ZERO,
) -> Decimal:
    """
    Discount on the pre-discount subtotal.

    Bulk and loyalty percentages are additive and never discount more than
    the subtotal.
    """
    if subtotal <= ZERO:
        return ZERO
    percentage = bulk_discount_percentage(quantity) + Decimal(str(loyalty_percentage or 0))
    return min(percent_of(subtotal, percentage), to_money(subtotal))


# ============================================
# CALCULATOR
# ============================================

class TariffCalculator:
    """Prices booking lines and aggregates them into booking totals."""

    def __init__(self, policy: Optional[TariffPolicy] = None):
        self.policy = policy or TariffPolicy.from_settings()

    def volumetric_weight(
        self,
        length_cm: Decimal,
        width_cm: Decimal,
        height_cm: Decimal,
        quantity: int = 1,
    ) -> Decimal:
        """Volumetric weight of quantity packages of the given dimensions."""
        volume = Decimal(str(length_cm)) * Decimal(str(width_cm)) * Decimal(str(height_cm))
        return (volume * quantity / Decimal(self.policy.volumetric_divisor)).quantize(
            Decimal("0.001"), rounding=ROUND_HALF_UP
        )

    def chargeable_weight(
        self,
        actual_weight: Decimal,
        charged_weight: Optional[Decimal] = None,
        dimensions: Optional[dict] = None,
        quantity: int = 1,
    ) -> Decimal:
        """Highest of actual, caller-declared charged and volumetric weight."""
        candidates = [Decimal(str(actual_weight))]
        if charged_weight is not None:
            candidates.append(Decimal(str(charged_weight)))
        if dimensions and all(dimensions.get(k) for k in ("length", "width", "height")):
            candidates.append(self.volumetric_weight(
                dimensions["length"], dimensions["width"], dimensions["height"], quantity
            ))
        return max(candidates)

    def _handling_rate(self, rate: Optional[Decimal], default: Decimal, special: bool) -> Decimal:
        per_unit = Decimal(str(rate)) if rate is not None else default
        if special:
            per_unit = per_unit * self.policy.special_handling_multiplier
        return per_unit

    def price_line(
        self,
        resolved_rate: ResolvedRate,
        quantity: int,
        weight: Decimal,
        options: Optional[LineOptions] = None,
    ) -> LineBreakdown:
        """
        Price one booking line.

        weight is the chargeable weight; use chargeable_weight() first when
        dimensions or a declared charged weight are involved.
        """
        options = options or LineOptions()
        if quantity <= 0:
            raise ValidationError("Quantity must be greater than zero", {"quantity": quantity})
        weight = Decimal(str(weight))
        if weight <= ZERO:
            raise ValidationError("Weight must be greater than zero", {"weight": str(weight)})

        base = base_amount(resolved_rate, quantity, weight)
        freight = max(base, to_money(resolved_rate.minimum_charge or ZERO))

        loading = to_money(quantity * self._handling_rate(
            options.loading_charge_per_unit,
            self.policy.default_loading_charge_per_unit,
            options.requires_special_handling,
        ))
        unloading = to_money(quantity * self._handling_rate(
            options.unloading_charge_per_unit,
            self.policy.default_unloading_charge_per_unit,
            options.requires_special_handling,
        ))

        urgency_pct = self.policy.urgency_surcharge_percentages.get(options.urgency)
        if urgency_pct is None:
            raise ValidationError(f"Unknown urgency '{options.urgency}'", {"urgency": options.urgency})
        surcharge = percent_of(freight, self.policy.fuel_surcharge_percentage)
        surcharge += percent_of(freight, urgency_pct)
        if options.is_fragile:
            surcharge += percent_of(freight, self.policy.fragile_surcharge_percentage)

        adjustment = to_money(options.adjustment_amount or ZERO)
        subtotal = freight + loading + unloading + surcharge + adjustment

        loyalty = options.loyalty_discount_percentage
        if loyalty is None:
            loyalty = resolved_rate.loyalty_discount_percentage
        discount = calculate_discount(subtotal, quantity, loyalty)
        taxable = max(subtotal - discount, ZERO)

        tax = percent_of(taxable, self.policy.tax_percentage)

        return LineBreakdown(
            charged_weight=weight,
            base_amount=base,
            freight_amount=freight,
            loading_charges=loading,
            unloading_charges=unloading,
            surcharge_amount=surcharge,
            adjustment_amount=adjustment,
            subtotal=subtotal,
            discount_amount=discount,
            taxable_amount=taxable,
            tax_amount=tax,
            total_amount=taxable + tax,
        )

    def aggregate(self, lines: Iterable) -> BookingTotals:
        """Sum priced lines (LineBreakdown or BookingArticle) into booking totals."""
        totals = BookingTotals()
        for line in lines:
            totals.line_count += 1
            totals.freight_amount += Decimal(str(line.freight_amount))
            totals.discount_amount += Decimal(str(line.discount_amount))
            totals.tax_amount += Decimal(str(line.tax_amount))
            totals.total_amount += Decimal(str(line.total_amount))
        totals.freight_amount = to_money(totals.freight_amount)
        totals.discount_amount = to_money(totals.discount_amount)
        totals.tax_amount = to_money(totals.tax_amount)
        totals.total_amount = to_money(totals.total_amount)
        return totals


def check_total(expected, computed: Decimal, tolerance: Decimal = None) -> None:
    """Raise TotalMismatch when a caller supplied total drifts from the aggregate."""
    if expected is None:
        return
    tolerance = tolerance if tolerance is not None else settings.TOTAL_TOLERANCE
    difference = abs(Decimal(str(expected)) - computed)
    if difference >= tolerance:
        raise TotalMismatch(
            f"Supplied total {expected} does not match computed total {computed}",
            {"supplied_total": str(expected), "computed_total": str(computed)},
        )
