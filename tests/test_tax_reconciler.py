"""
Tests for the tax reconciler.
"""

from datetime import date
from decimal import Decimal

from config.ats_config import TaxKind
from src.generators.tax_reconciler import reconcile_purchases, reconcile_withholdings

from tests.builders import make_purchase, make_withholding


def iva(id, percentage, amount):
    return make_withholding(id, tax_kind=TaxKind.IVA, code="72" + str(id), percentage=Decimal(percentage),
                            base_amount=Decimal("15.00"), withheld_amount=Decimal(amount))


class TestIvaBrackets:
    """IVA withholdings bucketed by percentage."""

    def test_each_bracket_is_summed(self):
        purchase = make_purchase(withholdings=[
            iva(1, "10", "1.50"),
            iva(2, "20", "3.00"),
            iva(3, "50", "7.50"),
            iva(4, "100", "15.00"),
            iva(5, "10", "0.50"),
        ])

        result = reconcile_withholdings(purchase)

        assert result.bracket_10 == Decimal("2.00")
        assert result.bracket_20 == Decimal("3.00")
        assert result.bracket_50 == Decimal("7.50")
        assert result.bracket_100 == Decimal("15.00")

    def test_goods_and_services_totals(self):
        purchase = make_purchase(withholdings=[iva(1, "10", "1.50"), iva(2, "20", "3.00"), iva(3, "50", "7.50")])

        result = reconcile_withholdings(purchase)

        assert result.goods_total == Decimal("1.50")
        assert result.services_total == Decimal("10.50")

    def test_percentage_with_decimals_matches_bracket(self):
        purchase = make_purchase(withholdings=[iva(1, "30.00", "4.50"), iva(2, "70.00", "10.50"),
                                               iva(3, "100.00", "15.00")])

        result = reconcile_withholdings(purchase)

        assert result.bracket_100 == Decimal("15.00")

    def test_other_percentages_stay_out_of_brackets(self):
        purchase = make_purchase(withholdings=[iva(1, "30", "4.50"), iva(2, "70", "10.50")])

        result = reconcile_withholdings(purchase)

        assert result.unbracketed == Decimal("15.00")
        assert result.goods_total == Decimal("0")
        assert result.services_total == Decimal("0")
        assert result.bracket_100 == Decimal("0")

    def test_no_withholdings(self):
        result = reconcile_withholdings(make_purchase(withholdings=[]))

        assert result.income_lines == []
        assert result.reference is None
        assert result.bracket_10 == Decimal("0")


class TestIncomeWithholdings:
    """Income tax withholdings become detail lines."""

    def test_each_income_withholding_is_a_line(self):
        purchase = make_purchase(withholdings=[
            make_withholding(1, code="312", percentage=Decimal("1.75"), withheld_amount=Decimal("1.75")),
            make_withholding(2, code="332", percentage=Decimal("0"), withheld_amount=Decimal("0")),
        ])

        result = reconcile_withholdings(purchase)

        assert [line.code for line in result.income_lines] == ["312", "332"]
        assert result.income_lines[0].withheld_amount == Decimal("1.75")

    def test_reference_is_first_wins(self):
        purchase = make_purchase(withholdings=[
            make_withholding(1, sequential="000000077", emission_date=date(2024, 1, 16)),
            make_withholding(2, sequential="000000078", emission_date=date(2024, 1, 17)),
        ])

        reference = reconcile_withholdings(purchase).reference

        assert reference.sequential == "000000077"
        assert reference.emission_date == date(2024, 1, 16)

    def test_iva_withholding_never_sets_reference(self):
        purchase = make_purchase(withholdings=[iva(1, "10", "1.50")])

        assert reconcile_withholdings(purchase).reference is None

    def test_source_purchase_is_not_mutated(self):
        withholdings = [make_withholding(1), iva(2, "10", "1.50")]
        purchase = make_purchase(withholdings=list(withholdings))

        reconcile_purchases([purchase])

        assert purchase.withholdings == withholdings
