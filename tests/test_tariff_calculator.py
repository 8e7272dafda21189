from decimal import Decimal

import pytest

from app.core.exceptions import TotalMismatch, ValidationError
from app.services.tariff_calculator import (
    LineOptions,
    ResolvedRate,
    TariffCalculator,
    TariffPolicy,
    base_amount,
    bulk_discount_percentage,
    calculate_discount,
    check_total,
    to_money,
)


def flat_policy(**overrides):
    """No surcharges, no tax, no handling: isolates one rule at a time."""
    values = dict(
        tax_percentage=Decimal("0"),
        fuel_surcharge_percentage=Decimal("0"),
        urgency_surcharge_percentages={
            "standard": Decimal("0"),
            "express": Decimal("25"),
            "urgent": Decimal("50"),
        },
        fragile_surcharge_percentage=Decimal("10"),
        default_loading_charge_per_unit=Decimal("0"),
        default_unloading_charge_per_unit=Decimal("0"),
        special_handling_multiplier=Decimal("1.5"),
        volumetric_divisor=5000,
    )
    values.update(overrides)
    return TariffPolicy(**values)


@pytest.fixture
def calculator():
    return TariffCalculator()


@pytest.fixture
def flat_calculator():
    return TariffCalculator(flat_policy())


class TestRounding:

    def test_half_up_to_paise(self):
        assert to_money(Decimal("2.675")) == Decimal("2.68")
        assert to_money(Decimal("2.665")) == Decimal("2.67")
        assert to_money("10") == Decimal("10.00")


class TestBaseAmount:

    def test_weight_basis(self):
        rate = ResolvedRate.manual("per_kg", Decimal("50"))
        assert base_amount(rate, 1, Decimal("26")) == Decimal("1300.00")

    def test_unit_basis(self):
        rate = ResolvedRate.manual("per_quantity", Decimal("120"))
        assert base_amount(rate, 4, Decimal("10")) == Decimal("480.00")

    def test_fixed_basis_ignores_quantity_and_weight(self):
        rate = ResolvedRate(charge_basis="fixed", rate_per_unit=Decimal("750"))
        assert base_amount(rate, 3, Decimal("90")) == Decimal("750.00")

    def test_whichever_higher_takes_max(self):
        rate = ResolvedRate(
            charge_basis="whichever_higher",
            rate_per_kg=Decimal("10"),
            rate_per_unit=Decimal("300"),
        )
        assert base_amount(rate, 2, Decimal("50")) == Decimal("600.00")
        assert base_amount(rate, 1, Decimal("50")) == Decimal("500.00")

    def test_missing_rate_for_basis(self):
        rate = ResolvedRate(charge_basis="weight")
        with pytest.raises(ValidationError):
            base_amount(rate, 1, Decimal("10"))

    def test_unknown_basis(self):
        rate = ResolvedRate(charge_basis="per_pallet", rate_per_unit=Decimal("1"))
        with pytest.raises(ValidationError):
            base_amount(rate, 1, Decimal("10"))

    def test_unknown_manual_rate_type(self):
        with pytest.raises(ValidationError):
            ResolvedRate.manual("per_km", Decimal("5"))


class TestDiscounts:

    @pytest.mark.parametrize(
        "quantity,expected",
        [(55, Decimal("100.00")), (50, Decimal("100.00")), (12, Decimal("50.00")), (5, Decimal("0.00"))],
    )
    def test_bulk_tiers(self, quantity, expected):
        assert calculate_discount(Decimal("1000"), quantity) == expected

    def test_bulk_percentage(self):
        assert bulk_discount_percentage(9) == Decimal("0")
        assert bulk_discount_percentage(10) == Decimal("5")

    def test_loyalty_adds_to_bulk(self):
        assert calculate_discount(Decimal("1000"), 12, Decimal("3")) == Decimal("80.00")

    def test_discount_never_exceeds_subtotal(self):
        assert calculate_discount(Decimal("100"), 60, Decimal("95")) == Decimal("100.00")

    def test_no_discount_on_non_positive_subtotal(self):
        assert calculate_discount(Decimal("-5"), 60) == Decimal("0")


class TestPriceLine:

    def test_default_policy_breakdown(self, calculator):
        rate = ResolvedRate.manual("per_kg", Decimal("50"))
        line = calculator.price_line(rate, 1, Decimal("26"))

        assert line.base_amount == Decimal("1300.00")
        assert line.freight_amount == Decimal("1300.00")
        assert line.surcharge_amount == Decimal("52.00")  # 4% fuel
        assert line.subtotal == Decimal("1352.00")
        assert line.discount_amount == Decimal("0.00")
        assert line.tax_amount == Decimal("243.36")  # 18% GST
        assert line.total_amount == Decimal("1595.36")

    def test_components_add_up_to_total(self, calculator):
        rate = ResolvedRate.manual("per_kg", Decimal("17.35"))
        line = calculator.price_line(
            rate, 13, Decimal("41.7"),
            LineOptions(urgency="express", is_fragile=True, adjustment_amount=Decimal("-12.5")),
        )
        subtotal = (
            line.freight_amount + line.loading_charges + line.unloading_charges
            + line.surcharge_amount + line.adjustment_amount
        )
        assert subtotal == line.subtotal
        assert line.subtotal - line.discount_amount == line.taxable_amount
        assert line.taxable_amount + line.tax_amount == line.total_amount
        for value in line.to_dict().values():
            assert value == value.quantize(Decimal("0.001"))

    def test_minimum_charge_floor(self, flat_calculator):
        rate = ResolvedRate(charge_basis="weight", rate_per_kg=Decimal("10"), minimum_charge=Decimal("500"))
        line = flat_calculator.price_line(rate, 1, Decimal("20"))
        assert line.base_amount == Decimal("200.00")
        assert line.freight_amount == Decimal("500.00")

    def test_urgency_and_fragile_surcharges(self, flat_calculator):
        rate = ResolvedRate.manual("per_kg", Decimal("10"))
        line = flat_calculator.price_line(
            rate, 1, Decimal("100"), LineOptions(urgency="urgent", is_fragile=True)
        )
        # 50% urgent + 10% fragile on 1000
        assert line.surcharge_amount == Decimal("600.00")

    def test_unknown_urgency(self, flat_calculator):
        rate = ResolvedRate.manual("per_kg", Decimal("10"))
        with pytest.raises(ValidationError):
            flat_calculator.price_line(rate, 1, Decimal("1"), LineOptions(urgency="overnight"))

    def test_special_handling_multiplies_handling_charges(self, flat_calculator):
        rate = ResolvedRate.manual("per_quantity", Decimal("100"))
        line = flat_calculator.price_line(
            rate, 4, Decimal("10"),
            LineOptions(
                requires_special_handling=True,
                loading_charge_per_unit=Decimal("10"),
                unloading_charge_per_unit=Decimal("5"),
            ),
        )
        assert line.loading_charges == Decimal("60.00")
        assert line.unloading_charges == Decimal("30.00")

    def test_default_handling_rates_from_policy(self):
        calculator = TariffCalculator(flat_policy(default_loading_charge_per_unit=Decimal("7")))
        rate = ResolvedRate.manual("per_quantity", Decimal("100"))
        line = calculator.price_line(rate, 3, Decimal("10"))
        assert line.loading_charges == Decimal("21.00")
        assert line.unloading_charges == Decimal("0.00")

    def test_negative_adjustment_clamps_taxable_at_zero(self, calculator):
        rate = ResolvedRate.manual("per_kg", Decimal("10"))
        line = calculator.price_line(
            rate, 1, Decimal("10"), LineOptions(adjustment_amount=Decimal("-200"))
        )
        assert line.subtotal < 0
        assert line.taxable_amount == Decimal("0")
        assert line.total_amount == Decimal("0")

    def test_contract_loyalty_used_when_caller_gives_none(self, flat_calculator):
        rate = ResolvedRate(
            charge_basis="weight",
            rate_per_kg=Decimal("10"),
            loyalty_discount_percentage=Decimal("5"),
        )
        line = flat_calculator.price_line(rate, 1, Decimal("100"))
        assert line.discount_amount == Decimal("50.00")

        explicit = flat_calculator.price_line(
            rate, 1, Decimal("100"), LineOptions(loyalty_discount_percentage=Decimal("0"))
        )
        assert explicit.discount_amount == Decimal("0.00")

    @pytest.mark.parametrize("quantity,weight", [(0, "10"), (1, "0"), (-2, "5")])
    def test_non_positive_inputs_rejected(self, calculator, quantity, weight):
        rate = ResolvedRate.manual("per_kg", Decimal("10"))
        with pytest.raises(ValidationError):
            calculator.price_line(rate, quantity, Decimal(weight))


class TestChargeableWeight:

    def test_volumetric_weight(self, calculator):
        assert calculator.volumetric_weight(Decimal("50"), Decimal("40"), Decimal("30"), 2) == Decimal("24.000")

    def test_highest_of_actual_declared_and_volumetric(self, calculator):
        dims = {"length": Decimal("50"), "width": Decimal("40"), "height": Decimal("30")}
        assert calculator.chargeable_weight(Decimal("10"), None, dims, 2) == Decimal("24.000")
        assert calculator.chargeable_weight(Decimal("10"), Decimal("30"), dims, 2) == Decimal("30")
        assert calculator.chargeable_weight(Decimal("40"), Decimal("30"), dims, 2) == Decimal("40")

    def test_partial_dimensions_ignored(self, calculator):
        assert calculator.chargeable_weight(Decimal("5"), None, {"length": Decimal("100")}) == Decimal("5")


class TestAggregate:

    def test_booking_total_is_sum_of_lines(self, calculator):
        lines = [
            calculator.price_line(ResolvedRate.manual("per_kg", Decimal("50")), 1, Decimal("26")),
            calculator.price_line(ResolvedRate.manual("per_quantity", Decimal("33.33")), 3, Decimal("5")),
            calculator.price_line(ResolvedRate.manual("per_kg", Decimal("7.77")), 12, Decimal("19.5")),
        ]
        totals = calculator.aggregate(lines)

        assert totals.line_count == 3
        assert totals.total_amount == sum(line.total_amount for line in lines)
        assert totals.tax_amount == sum(line.tax_amount for line in lines)

    def test_empty(self, calculator):
        totals = calculator.aggregate([])
        assert totals.line_count == 0
        assert totals.total_amount == Decimal("0")


class TestCheckTotal:

    def test_matching_and_missing_totals_pass(self):
        check_total(Decimal("100.00"), Decimal("100.00"))
        check_total(None, Decimal("100.00"))
        check_total(Decimal("100.005"), Decimal("100.00"))

    def test_drift_of_a_paisa_raises(self):
        with pytest.raises(TotalMismatch) as exc_info:
            check_total(Decimal("100.01"), Decimal("100.00"))

        assert exc_info.value.status_code == 422
        assert exc_info.value.details["computed_total"] == "100.00"
