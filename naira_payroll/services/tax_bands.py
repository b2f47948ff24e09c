"""
Naira Payroll Engine - PAYE Tax Band Table

Versioned progressive tax bands and statutory rates.

PITA (as amended 2011) PAYE Tax Bands, applied to annual taxable income:
- First ₦300,000: 7%
- Next ₦300,000: 11%
- Next ₦500,000: 15%
- Next ₦500,000: 19%
- Next ₦1,600,000: 21%
- Above ₦3,200,000: 24%

Relief:
- Consolidated Relief Allowance (CRA): 20% of gross income
  + the higher of ₦200,000 or 1% of gross income

Statutory contributions:
- Pension: 8% employee, 10% employer (Basic + Housing + Transport)
- NHF: 2.5% of basic salary

Band sets are selected by effective date so historical runs stay
reproducible after rates change. A tenant may carry its own versions,
which take precedence over the default table.
"""

import json
import logging
from bisect import bisect_right
from dataclasses import dataclass, field
from functools import lru_cache
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, Iterator, Mapping, Optional, Sequence, Tuple
from uuid import UUID

from naira_payroll.config import settings
from naira_payroll.utils.error_handling import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TaxBand:
    """One progressive band: ``width`` naira taxed at ``rate``. ``None`` width is unbounded."""
    width: Optional[Decimal]
    rate: Decimal


@dataclass(frozen=True)
class StatutoryRates:
    """Contribution rates and CRA constants, as fractions."""
    pension_employee_rate: Decimal = Decimal("0.08")
    pension_employer_rate: Decimal = Decimal("0.10")
    nhf_rate: Decimal = Decimal("0.025")
    cra_percentage: Decimal = Decimal("0.20")
    cra_fixed_amount: Decimal = Decimal("200000")
    cra_minimum_percentage: Decimal = Decimal("0.01")


@dataclass(frozen=True)
class TaxBandSet:
    """An ordered band list plus the statutory rates in force from ``effective_from``."""
    name: str
    effective_from: date
    bands: Tuple[TaxBand, ...]
    rates: StatutoryRates = field(default_factory=StatutoryRates)

    def __iter__(self) -> Iterator[TaxBand]:
        return iter(self.bands)

    def __len__(self) -> int:
        return len(self.bands)


PITA_2011_BANDS = TaxBandSet(
    name="PITA 2011",
    effective_from=date(2011, 1, 1),
    bands=(
        TaxBand(Decimal("300000"), Decimal("0.07")),
        TaxBand(Decimal("300000"), Decimal("0.11")),
        TaxBand(Decimal("500000"), Decimal("0.15")),
        TaxBand(Decimal("500000"), Decimal("0.19")),
        TaxBand(Decimal("1600000"), Decimal("0.21")),
        TaxBand(None, Decimal("0.24")),
    ),
)


def validate_band_set(band_set: TaxBandSet) -> TaxBandSet:
    """
    Reject malformed band sets at load time.

    Widths must be strictly positive, only the final band may be (and
    must be) unbounded, and every rate must lie in [0, 1].
    """
    where = f"{band_set.name} ({band_set.effective_from})"
    if not band_set.bands:
        raise ConfigurationError(f"Tax band set {where} has no bands")

    last = len(band_set.bands) - 1
    for index, band in enumerate(band_set.bands):
        if band.width is None and index != last:
            raise ConfigurationError(
                f"Tax band set {where}: only the final band may be unbounded",
                details={"band_index": index},
            )
        if band.width is not None:
            if index == last:
                raise ConfigurationError(
                    f"Tax band set {where}: final band must be unbounded",
                    details={"band_index": index},
                )
            if band.width <= 0:
                raise ConfigurationError(
                    f"Tax band set {where}: band width must be positive",
                    details={"band_index": index, "width": str(band.width)},
                )
        if not Decimal("0") <= band.rate <= Decimal("1"):
            raise ConfigurationError(
                f"Tax band set {where}: rate must be between 0 and 1",
                details={"band_index": index, "rate": str(band.rate)},
            )

    rates = band_set.rates
    for name in (
        "pension_employee_rate",
        "pension_employer_rate",
        "nhf_rate",
        "cra_percentage",
        "cra_minimum_percentage",
    ):
        value = getattr(rates, name)
        if not Decimal("0") <= value <= Decimal("1"):
            raise ConfigurationError(
                f"Tax band set {where}: {name} must be between 0 and 1",
                details={name: str(value)},
            )
    if rates.cra_fixed_amount < 0:
        raise ConfigurationError(f"Tax band set {where}: cra_fixed_amount must not be negative")
    return band_set


class TaxBandTable:
    """
    Lookup of band sets by tenant and date.

    Immutable after construction. Versions for a key are ordered by
    ``effective_from``; a version applies until the next one starts.
    """

    def __init__(
        self,
        default_versions: Sequence[TaxBandSet],
        tenant_versions: Optional[Mapping[UUID, Sequence[TaxBandSet]]] = None,
    ):
        self._default = self._prepare(default_versions, "default")
        self._tenants: Dict[UUID, Tuple[TaxBandSet, ...]] = {
            tenant_id: self._prepare(versions, str(tenant_id))
            for tenant_id, versions in (tenant_versions or {}).items()
        }

    @staticmethod
    def _prepare(versions: Sequence[TaxBandSet], owner: str) -> Tuple[TaxBandSet, ...]:
        ordered = sorted(versions, key=lambda v: v.effective_from)
        for earlier, later in zip(ordered, ordered[1:]):
            if earlier.effective_from == later.effective_from:
                raise ConfigurationError(
                    f"Two tax band versions for {owner} start on {later.effective_from}",
                )
        return tuple(validate_band_set(v) for v in ordered)

    def bands_for(self, tenant_id: Optional[UUID], as_of: date) -> TaxBandSet:
        """
        Band set in force for the tenant on ``as_of``.

        Raises:
            ConfigurationError: if no version covers the date
        """
        versions = self._tenants.get(tenant_id) if tenant_id is not None else None
        if not versions:
            versions = self._default

        index = bisect_right([v.effective_from for v in versions], as_of) - 1
        if index < 0:
            raise ConfigurationError(
                f"No tax bands configured for {as_of}",
                details={"tenant_id": str(tenant_id) if tenant_id else None, "as_of": str(as_of)},
            )
        return versions[index]

    @classmethod
    def default(cls) -> "TaxBandTable":
        return cls([PITA_2011_BANDS])

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TaxBandTable":
        """
        Build a table from a JSON-style document::

            {
              "default": [{"name": "...", "effective_from": "2011-01-01",
                           "bands": [{"width": "300000", "rate": "0.07"}, ...,
                                     {"width": null, "rate": "0.24"}],
                           "rates": {"nhf_rate": "0.025", ...}}],
              "tenants": {"<tenant uuid>": [ ...same shape... ]}
            }
        """
        try:
            default = [_parse_band_set(v) for v in data.get("default", [])]
            tenants = {
                UUID(tenant_id): [_parse_band_set(v) for v in versions]
                for tenant_id, versions in (data.get("tenants") or {}).items()
            }
        except (KeyError, TypeError, ValueError, InvalidOperation) as e:
            raise ConfigurationError(f"Malformed tax band configuration: {e}")
        if not default:
            raise ConfigurationError("Tax band configuration has no default versions")
        return cls(default, tenants)

    @classmethod
    def from_json_file(cls, path: str) -> "TaxBandTable":
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Cannot read tax band file '{path}': {e}")
        table = cls.from_dict(data)
        logger.info(f"Loaded tax band table from {path}")
        return table


def _parse_band_set(raw: Mapping[str, Any]) -> TaxBandSet:
    bands = tuple(
        TaxBand(
            width=Decimal(str(b["width"])) if b.get("width") is not None else None,
            rate=Decimal(str(b["rate"])),
        )
        for b in raw["bands"]
    )
    rates = StatutoryRates(**{k: Decimal(str(v)) for k, v in (raw.get("rates") or {}).items()})
    return TaxBandSet(
        name=raw.get("name", raw["effective_from"]),
        effective_from=date.fromisoformat(raw["effective_from"]),
        bands=bands,
        rates=rates,
    )


@lru_cache()
def get_tax_band_table() -> TaxBandTable:
    """
    Process-wide band table, loaded once.

    Uses ``settings.tax_bands_file`` when set, otherwise the built-in
    PITA table. Call ``reload_tax_band_table`` after changing the file.
    """
    if settings.tax_bands_file:
        return TaxBandTable.from_json_file(settings.tax_bands_file)
    return TaxBandTable.default()


def reload_tax_band_table() -> TaxBandTable:
    get_tax_band_table.cache_clear()
    return get_tax_band_table()
