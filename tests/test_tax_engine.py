"""
Naira Payroll Engine - Tax Engine Tests

Unit tests for PAYE, pension and NHF computation under the PITA bands.
"""

from decimal import Decimal

import pytest

from naira_payroll.services.tax_bands import PITA_2011_BANDS
from naira_payroll.services.tax_engine import (
    CompensationSnapshot,
    PreviewSplit,
    TaxEngine,
    apply_bands,
)
from naira_payroll.utils.error_handling import ConfigurationError, InvalidAmountException

KOBO = Decimal("0.01")


def grade_seven(**overrides) -> CompensationSnapshot:
    """₦500,000 monthly gross split 60/25/15."""
    values = dict(
        basic=Decimal("300000"),
        housing=Decimal("125000"),
        transport=Decimal("75000"),
    )
    values.update(overrides)
    return CompensationSnapshot(**values)


@pytest.fixture
def engine() -> TaxEngine:
    return TaxEngine()


class TestStatutoryComputation:
    """Worked ₦500,000 example under PITA 2011."""

    def test_contributions(self, engine):
        result = engine.compute(grade_seven(), PITA_2011_BANDS)

        assert result.gross == Decimal("500000.00")
        assert result.pensionable_base == Decimal("500000.00")
        assert result.pension_employee == Decimal("40000.00")
        assert result.pension_employer == Decimal("50000.00")
        assert result.nhf == Decimal("7500.00")

    def test_annual_tax_basis(self, engine):
        result = engine.compute(grade_seven(), PITA_2011_BANDS)

        # CRA: 20% of 6,000,000 + max(200,000, 60,000)
        assert result.gross_annual == Decimal("6000000.00")
        assert result.consolidated_relief == Decimal("1400000.00")
        # 6,000,000 - 1,400,000 - 480,000 pension - 90,000 NHF
        assert result.taxable_income_annual == Decimal("4030000.00")

    def test_paye(self, engine):
        result = engine.compute(grade_seven(), PITA_2011_BANDS)

        # 21,000 + 33,000 + 75,000 + 95,000 + 336,000 + 830,000 x 24%
        assert result.annual_tax == Decimal("759200.00")
        assert result.paye == Decimal("63266.67")

    def test_net_pay(self, engine):
        result = engine.compute(grade_seven(), PITA_2011_BANDS)

        assert result.total_deductions == Decimal("110766.67")
        assert result.net == Decimal("389233.33")
        assert result.employer_contributions == Decimal("50000.00")

    def test_band_breakdown(self, engine):
        result = engine.compute(grade_seven(), PITA_2011_BANDS)

        assert len(result.band_breakdown) == 6
        top = result.band_breakdown[-1]
        assert top.lower == Decimal("3200000")
        assert top.upper is None
        assert top.taxable_amount == Decimal("830000")
        assert top.tax_amount == Decimal("199200.00")
        assert sum(b.tax_amount for b in result.band_breakdown) == result.annual_tax

    def test_tax_calculation_record(self, engine):
        record = engine.compute(grade_seven(), PITA_2011_BANDS).tax_calculation()

        assert record["band_set"] == "PITA 2011"
        assert record["taxable_income"] == "4030000.00"
        assert record["pension_relief"] == "480000.00"
        assert len(record["bands"]) == 6

    def test_low_income_uses_first_band_only(self, engine):
        result = engine.compute(CompensationSnapshot(basic=Decimal("30000")), PITA_2011_BANDS)

        # 360,000 - 272,000 CRA - 28,800 pension - 9,000 NHF = 50,200 at 7%
        assert result.taxable_income_annual == Decimal("50200.00")
        assert result.annual_tax == Decimal("3514.00")
        assert result.paye == Decimal("292.83")
        assert len(result.band_breakdown) == 1

    def test_zero_compensation(self, engine):
        result = engine.compute(CompensationSnapshot(basic=Decimal("0")), PITA_2011_BANDS)

        assert result.gross == Decimal("0.00")
        assert result.taxable_income_annual == Decimal("0.00")
        assert result.paye == Decimal("0.00")
        assert result.net == Decimal("0.00")
        assert result.band_breakdown == ()

    def test_negative_gross_rejected(self, engine):
        with pytest.raises(InvalidAmountException):
            engine.compute(CompensationSnapshot(basic=Decimal("-1")), PITA_2011_BANDS)


class TestAllowancesAndDeductions:
    """Non-statutory components."""

    def test_other_allowances_are_taxed_but_not_pensionable(self, engine):
        result = engine.compute(
            grade_seven(other_allowances={"bonus": Decimal("100000")}),
            PITA_2011_BANDS,
        )

        assert result.gross == Decimal("600000.00")
        assert result.pension_employee == Decimal("40000.00")
        assert result.paye == Decimal("82466.67")
        assert result.other_allowances == {"bonus": Decimal("100000.00")}

    def test_other_deductions_reduce_net_only(self, engine):
        base = engine.compute(grade_seven(), PITA_2011_BANDS)
        result = engine.compute(
            grade_seven(other_deductions={"loan_repayment": Decimal("20000")}),
            PITA_2011_BANDS,
        )

        assert result.paye == base.paye
        assert result.other_deductions_total == Decimal("20000.00")
        assert result.total_deductions == Decimal("130766.67")
        assert result.net == Decimal("369233.33")

    def test_deductions_may_exceed_gross(self, engine):
        result = engine.compute(
            CompensationSnapshot(basic=Decimal("50000"), other_deductions={"salary_advance": Decimal("60000")}),
            PITA_2011_BANDS,
        )
        assert result.net < 0


class TestApplicabilityFlags:
    """Components switched off per employee."""

    def test_paye_not_applicable(self, engine):
        result = engine.compute(grade_seven(paye_applicable=False), PITA_2011_BANDS)

        assert result.paye == Decimal("0.00")
        assert result.annual_tax == Decimal("0.00")
        assert result.band_breakdown == ()
        assert result.net == Decimal("452500.00")

    def test_pension_not_applicable(self, engine):
        result = engine.compute(grade_seven(pension_applicable=False), PITA_2011_BANDS)

        assert result.pension_employee == Decimal("0.00")
        assert result.pension_employer == Decimal("0.00")
        # No pension relief: taxable 4,510,000
        assert result.taxable_income_annual == Decimal("4510000.00")
        assert result.paye == Decimal("72866.67")

    def test_nhf_not_applicable(self, engine):
        result = engine.compute(grade_seven(nhf_applicable=False), PITA_2011_BANDS)

        assert result.nhf == Decimal("0.00")
        assert result.taxable_income_annual == Decimal("4120000.00")
        assert result.paye == Decimal("65066.67")


class TestRoundingIdentity:
    """Published amounts are kobo-exact and always add up."""

    @pytest.mark.parametrize("basic,housing,transport,meal,deduction", [
        ("123456.789", "45678.123", "9876.555", "0", "0"),
        ("333333.335", "111111.115", "55555.555", "12345.675", "1000.005"),
        ("87500", "21875", "13125", "5000", "2500.50"),
        ("1", "0", "0", "0", "0"),
        ("2750000", "1000000", "500000", "250000", "150000"),
    ])
    def test_net_identity(self, engine, basic, housing, transport, meal, deduction):
        snapshot = CompensationSnapshot(
            basic=Decimal(basic),
            housing=Decimal(housing),
            transport=Decimal(transport),
            meal=Decimal(meal),
            other_deductions={"cooperative": Decimal(deduction)},
        )
        result = engine.compute(snapshot, PITA_2011_BANDS)

        for value in (result.gross, result.paye, result.pension_employee, result.nhf,
                      result.other_deductions_total, result.total_deductions, result.net):
            assert value == value.quantize(KOBO)
        assert result.net == (
            result.gross - result.paye - result.pension_employee - result.nhf - result.other_deductions_total
        )

    def test_compute_is_deterministic(self, engine):
        snapshot = grade_seven(other_allowances={"overtime": Decimal("12345.67")})
        assert engine.compute(snapshot, PITA_2011_BANDS) == engine.compute(snapshot, PITA_2011_BANDS)


class TestApplyBands:
    """Cumulative band consumption."""

    def test_stops_when_income_exhausted(self):
        tax, breakdown = apply_bands(Decimal("400000"), PITA_2011_BANDS)

        assert tax == Decimal("32000")  # 21,000 + 100,000 x 11%
        assert len(breakdown) == 2
        assert breakdown[1].taxable_amount == Decimal("100000")

    def test_zero_income(self):
        tax, breakdown = apply_bands(Decimal("0"), PITA_2011_BANDS)
        assert tax == Decimal("0")
        assert breakdown == ()

    def test_exact_band_boundary(self):
        tax, breakdown = apply_bands(Decimal("3200000"), PITA_2011_BANDS)
        assert tax == Decimal("560000")
        assert len(breakdown) == 5


class TestTaxPreview:
    """Quick estimate from a monthly gross."""

    def test_preview_500k(self, engine):
        preview = engine.preview(Decimal("500000"), PITA_2011_BANDS)

        assert preview.basic == Decimal("300000.00")
        assert preview.housing == Decimal("125000.00")
        assert preview.transport == Decimal("75000.00")
        assert preview.paye_monthly == Decimal("63266.67")
        assert preview.paye_annual == Decimal("759200.00")
        assert preview.net_monthly == Decimal("389233.33")
        assert preview.effective_tax_rate == Decimal("0.1265")

    def test_preview_matches_compute(self, engine):
        preview = engine.preview(Decimal("750000"), PITA_2011_BANDS)
        computed = engine.compute(
            CompensationSnapshot(basic=preview.basic, housing=preview.housing, transport=preview.transport),
            PITA_2011_BANDS,
        )

        assert preview.paye_monthly == computed.paye
        assert preview.net_monthly == computed.net
        assert preview.total_deductions == computed.total_deductions

    def test_transport_takes_rounding_residue(self, engine):
        preview = engine.preview(Decimal("100000.01"), PITA_2011_BANDS)

        assert preview.basic == Decimal("60000.01")
        assert preview.housing == Decimal("25000.00")
        assert preview.transport == Decimal("15000.00")
        assert preview.basic + preview.housing + preview.transport == preview.gross_monthly

    def test_zero_gross_has_zero_rate(self, engine):
        preview = engine.preview(Decimal("0"), PITA_2011_BANDS)
        assert preview.effective_tax_rate == Decimal("0")
        assert preview.net_monthly == Decimal("0.00")

    def test_negative_gross_rejected(self, engine):
        with pytest.raises(InvalidAmountException):
            engine.preview(Decimal("-100"), PITA_2011_BANDS)

    def test_custom_split(self, engine):
        split = PreviewSplit(basic=Decimal("0.50"), housing=Decimal("0.30"), transport=Decimal("0.20"))
        preview = engine.preview(Decimal("200000"), PITA_2011_BANDS, split)

        assert preview.basic == Decimal("100000.00")
        assert preview.housing == Decimal("60000.00")
        assert preview.transport == Decimal("40000.00")
        assert preview.nhf == Decimal("2500.00")

    def test_split_must_sum_to_one(self):
        with pytest.raises(ConfigurationError):
            PreviewSplit(basic=Decimal("0.60"), housing=Decimal("0.30"), transport=Decimal("0.20"))
