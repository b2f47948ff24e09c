"""
Naira Payroll Engine - Statutory Tax Engine

Pure computation from a compensation snapshot to a payslip:

1. Gross = basic + housing + transport + meal + utility + other allowances
2. Pension (employee 8%, employer 10%) on basic + housing + transport
3. NHF = 2.5% of basic
4. CRA = 20% of annual gross + max(₦200,000, 1% of annual gross)
5. Taxable income = annual gross - CRA - annual pension - annual NHF
6. PAYE = progressive bands on taxable income, divided by 12
7. Net = gross - PAYE - pension - NHF - other deductions

No I/O and no state: identical inputs give identical outputs. Working
values keep full Decimal precision; published amounts are rounded once
to kobo (half-up), and net pay is derived from the rounded amounts so
the payslip always adds up exactly.
"""

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Mapping, Optional, Tuple

from naira_payroll.services.tax_bands import TaxBandSet
from naira_payroll.utils.error_handling import ConfigurationError, InvalidAmountException
from naira_payroll.utils.money import ZERO, to_naira, total

MONTHS_PER_YEAR = Decimal("12")
RATE_PLACES = Decimal("0.0001")


@dataclass(frozen=True)
class CompensationSnapshot:
    """Monthly compensation in force for one employee on one date."""
    basic: Decimal
    housing: Decimal = ZERO
    transport: Decimal = ZERO
    meal: Decimal = ZERO
    utility: Decimal = ZERO
    other_allowances: Mapping[str, Decimal] = field(default_factory=dict)
    other_deductions: Mapping[str, Decimal] = field(default_factory=dict)
    paye_applicable: bool = True
    pension_applicable: bool = True
    nhf_applicable: bool = True


@dataclass(frozen=True)
class BandTax:
    """Tax charged in one band of the annual computation."""
    lower: Decimal
    upper: Optional[Decimal]
    rate: Decimal
    taxable_amount: Decimal
    tax_amount: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lower": str(self.lower),
            "upper": str(self.upper) if self.upper is not None else None,
            "rate": str(self.rate),
            "taxable_amount": str(to_naira(self.taxable_amount)),
            "tax_amount": str(self.tax_amount),
        }


@dataclass(frozen=True)
class PayslipComputation:
    """Result of computing one payslip. All amounts are rounded to kobo."""
    basic: Decimal
    housing: Decimal
    transport: Decimal
    meal: Decimal
    utility: Decimal
    other_allowances: Mapping[str, Decimal]
    gross: Decimal
    pensionable_base: Decimal
    pension_employee: Decimal
    pension_employer: Decimal
    nhf: Decimal
    gross_annual: Decimal
    consolidated_relief: Decimal
    taxable_income_annual: Decimal
    annual_tax: Decimal
    paye: Decimal
    other_deductions: Mapping[str, Decimal]
    other_deductions_total: Decimal
    total_deductions: Decimal
    net: Decimal
    band_breakdown: Tuple[BandTax, ...] = ()
    band_set_name: str = ""

    @property
    def employer_contributions(self) -> Decimal:
        return self.pension_employer

    def tax_calculation(self) -> Dict[str, Any]:
        """JSON-ready record of the annual PAYE workings."""
        return {
            "band_set": self.band_set_name,
            "gross_annual": str(self.gross_annual),
            "consolidated_relief": str(self.consolidated_relief),
            "pension_relief": str(to_naira(self.pension_employee * MONTHS_PER_YEAR)),
            "nhf_relief": str(to_naira(self.nhf * MONTHS_PER_YEAR)),
            "taxable_income": str(self.taxable_income_annual),
            "annual_tax": str(self.annual_tax),
            "bands": [b.to_dict() for b in self.band_breakdown],
        }


def apply_bands(taxable_income: Decimal, band_set: TaxBandSet) -> Tuple[Decimal, Tuple[BandTax, ...]]:
    """
    Consume ``taxable_income`` band by band.

    Returns the unrounded annual tax and the per-band breakdown. Stops as
    soon as nothing remains to tax.
    """
    remaining = taxable_income
    lower = ZERO
    annual_tax = ZERO
    breakdown = []
    for band in band_set:
        if remaining <= 0:
            break
        portion = remaining if band.width is None else min(remaining, band.width)
        upper = None if band.width is None else lower + band.width
        band_tax = portion * band.rate
        breakdown.append(BandTax(lower, upper, band.rate, portion, to_naira(band_tax)))
        annual_tax += band_tax
        remaining -= portion
        lower = upper
    return annual_tax, tuple(breakdown)


@dataclass(frozen=True)
class PreviewSplit:
    """Share of monthly gross assumed for basic, housing and transport in a preview."""
    basic: Decimal = Decimal("0.60")
    housing: Decimal = Decimal("0.25")
    transport: Decimal = Decimal("0.15")

    def __post_init__(self):
        if min(self.basic, self.housing, self.transport) < 0:
            raise ConfigurationError("Preview split ratios must not be negative")
        if self.basic + self.housing + self.transport != Decimal("1"):
            raise ConfigurationError(
                "Preview split ratios must add up to 1",
                details={
                    "basic": str(self.basic),
                    "housing": str(self.housing),
                    "transport": str(self.transport),
                },
            )


@dataclass(frozen=True)
class TaxPreview:
    gross_monthly: Decimal
    gross_annual: Decimal
    basic: Decimal
    housing: Decimal
    transport: Decimal
    paye_monthly: Decimal
    paye_annual: Decimal
    pension_employee: Decimal
    pension_employer: Decimal
    nhf: Decimal
    total_deductions: Decimal
    net_monthly: Decimal
    consolidated_relief: Decimal
    taxable_income_annual: Decimal
    effective_tax_rate: Decimal
    band_breakdown: Tuple[BandTax, ...]


class TaxEngine:
    """
    Nigerian statutory payroll calculator.

    Stateless; the band set (and its statutory rates) is passed in on
    every call so the caller controls which version applies.
    """

    def compute(self, snapshot: CompensationSnapshot, band_set: TaxBandSet) -> PayslipComputation:
        rates = band_set.rates

        other_allowances_total = total(snapshot.other_allowances.values())
        gross = (
            snapshot.basic
            + snapshot.housing
            + snapshot.transport
            + snapshot.meal
            + snapshot.utility
            + other_allowances_total
        )
        if gross < 0:
            raise InvalidAmountException(gross, field="gross")

        pensionable_base = snapshot.basic + snapshot.housing + snapshot.transport
        if snapshot.pension_applicable:
            pension_employee = pensionable_base * rates.pension_employee_rate
            pension_employer = pensionable_base * rates.pension_employer_rate
        else:
            pension_employee = pension_employer = ZERO

        nhf = snapshot.basic * rates.nhf_rate if snapshot.nhf_applicable else ZERO

        # Annual figures for PAYE
        gross_annual = gross * MONTHS_PER_YEAR
        cra = gross_annual * rates.cra_percentage + max(
            rates.cra_fixed_amount,
            gross_annual * rates.cra_minimum_percentage,
        )
        taxable_income = max(
            ZERO,
            gross_annual - cra - pension_employee * MONTHS_PER_YEAR - nhf * MONTHS_PER_YEAR,
        )
        if snapshot.paye_applicable:
            annual_tax, breakdown = apply_bands(taxable_income, band_set)
        else:
            annual_tax, breakdown = ZERO, ()

        # Boundary: round each published amount once
        gross_out = to_naira(gross)
        paye_out = to_naira(annual_tax / MONTHS_PER_YEAR)
        pension_employee_out = to_naira(pension_employee)
        nhf_out = to_naira(nhf)
        other_deductions = {code: to_naira(amount) for code, amount in snapshot.other_deductions.items()}
        other_deductions_total = total(other_deductions.values())
        total_deductions = paye_out + pension_employee_out + nhf_out + other_deductions_total

        return PayslipComputation(
            basic=to_naira(snapshot.basic),
            housing=to_naira(snapshot.housing),
            transport=to_naira(snapshot.transport),
            meal=to_naira(snapshot.meal),
            utility=to_naira(snapshot.utility),
            other_allowances={code: to_naira(amount) for code, amount in snapshot.other_allowances.items()},
            gross=gross_out,
            pensionable_base=to_naira(pensionable_base),
            pension_employee=pension_employee_out,
            pension_employer=to_naira(pension_employer),
            nhf=nhf_out,
            gross_annual=to_naira(gross_annual),
            consolidated_relief=to_naira(cra),
            taxable_income_annual=to_naira(taxable_income),
            annual_tax=to_naira(annual_tax),
            paye=paye_out,
            other_deductions=other_deductions,
            other_deductions_total=other_deductions_total,
            total_deductions=total_deductions,
            net=gross_out - total_deductions,
            band_breakdown=breakdown,
            band_set_name=band_set.name,
        )

    def preview(
        self,
        monthly_gross: Decimal,
        band_set: TaxBandSet,
        split: Optional[PreviewSplit] = None,
    ) -> TaxPreview:
        """
        Estimate deductions for a monthly gross salary.

        The gross is split into basic/housing/transport (60/25/15 by
        default) and run through ``compute``; transport absorbs any
        rounding residue so the parts add back to the gross.
        """
        if monthly_gross < 0:
            raise InvalidAmountException(monthly_gross, field="monthly_gross")
        split = split or PreviewSplit()

        basic = to_naira(monthly_gross * split.basic)
        housing = to_naira(monthly_gross * split.housing)
        transport = monthly_gross - basic - housing
        computation = self.compute(
            CompensationSnapshot(basic=basic, housing=housing, transport=transport),
            band_set,
        )

        if computation.gross_annual > 0:
            effective_rate = (computation.annual_tax / computation.gross_annual).quantize(
                RATE_PLACES, rounding=ROUND_HALF_UP
            )
        else:
            effective_rate = ZERO.quantize(RATE_PLACES)

        return TaxPreview(
            gross_monthly=computation.gross,
            gross_annual=computation.gross_annual,
            basic=computation.basic,
            housing=computation.housing,
            transport=computation.transport,
            paye_monthly=computation.paye,
            paye_annual=computation.annual_tax,
            pension_employee=computation.pension_employee,
            pension_employer=computation.pension_employer,
            nhf=computation.nhf,
            total_deductions=computation.total_deductions,
            net_monthly=computation.net,
            consolidated_relief=computation.consolidated_relief,
            taxable_income_annual=computation.taxable_income_annual,
            effective_tax_rate=effective_rate,
            band_breakdown=computation.band_breakdown,
        )
