"""
Tax Rate Provider Module

Resolves the statutory rates (EPF, ETF, stamp fee, APIT brackets) that are
active on a given date from the tax configuration store, falling back to the
Sri Lankan defaults when no usable configuration exists.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Iterable

import yaml

logger = logging.getLogger(__name__)


class TaxType(Enum):
    """Tax configuration types."""
    EPF_EMPLOYEE = "epf_employee"
    EPF_EMPLOYER = "epf_employer"
    ETF = "etf"
    STAMP_FEE = "stamp_fee"
    APIT = "apit"  # Advance Personal Income Tax
    VAT = "vat"
    INCOME = "income"
    WITHHOLDING = "withholding"


DEFAULT_EPF_EMPLOYEE_RATE = Decimal("8")
DEFAULT_EPF_EMPLOYER_RATE = Decimal("12")
DEFAULT_ETF_RATE = Decimal("3")
DEFAULT_STAMP_FEE = Decimal("25")

DEFAULT_SIMPLE_RATES = {
    TaxType.EPF_EMPLOYEE: DEFAULT_EPF_EMPLOYEE_RATE,
    TaxType.EPF_EMPLOYER: DEFAULT_EPF_EMPLOYER_RATE,
    TaxType.ETF: DEFAULT_ETF_RATE,
    TaxType.STAMP_FEE: DEFAULT_STAMP_FEE,
}


@dataclass(frozen=True)
class TaxBracket:
    """Single APIT bracket. max_income of None means no upper limit."""

    min_income: Decimal
    max_income: Decimal | None
    rate: Decimal

    @classmethod
    def from_dict(cls, data: dict) -> "TaxBracket":
        if not isinstance(data, dict):
            raise ValueError(f"Bracket must be a mapping, got {data!r}")

        max_income = data.get("max_income", data.get("maxIncome"))
        return cls(
            min_income=_to_decimal(data.get("min_income", data.get("minIncome", 0))),
            # A zero ceiling is stored by the old UI when the field is left blank
            max_income=_to_decimal(max_income) if max_income else None,
            rate=_to_decimal(data.get("rate", 0)),
        )

    def to_dict(self) -> dict:
        return {
            "minIncome": float(self.min_income),
            "maxIncome": float(self.max_income) if self.max_income is not None else None,
            "rate": float(self.rate),
        }


def _bracket(min_income: int, max_income: int | None, rate: int) -> TaxBracket:
    return TaxBracket(
        Decimal(min_income),
        Decimal(max_income) if max_income is not None else None,
        Decimal(rate),
    )


# Monthly APIT table
DEFAULT_APIT_BRACKETS: tuple[TaxBracket, ...] = (
    _bracket(0, 100000, 0),
    _bracket(100001, 141667, 6),
    _bracket(141668, 183333, 12),
    _bracket(183334, 225000, 18),
    _bracket(225001, 266667, 24),
    _bracket(266668, 308333, 30),
    _bracket(308334, None, 36),
)


@dataclass(frozen=True)
class TaxRateSet:
    """Rates resolved for a single payroll calculation."""

    epf_employee_rate: Decimal = DEFAULT_EPF_EMPLOYEE_RATE
    epf_employer_rate: Decimal = DEFAULT_EPF_EMPLOYER_RATE
    etf_rate: Decimal = DEFAULT_ETF_RATE
    stamp_fee: Decimal = DEFAULT_STAMP_FEE
    apit_brackets: tuple[TaxBracket, ...] = DEFAULT_APIT_BRACKETS

    def to_dict(self) -> dict:
        return {
            "epfEmployeeRate": float(self.epf_employee_rate),
            "epfEmployerRate": float(self.epf_employer_rate),
            "etfRate": float(self.etf_rate),
            "stampFee": float(self.stamp_fee),
            "apitBrackets": [b.to_dict() for b in self.apit_brackets],
        }


@dataclass
class TaxConfigEntry:
    """One row of the tax configuration store."""

    name: str
    tax_type: TaxType
    applicable_from: date
    rate: Decimal | None = None
    brackets: list[TaxBracket] = field(default_factory=list)
    applicable_to: date | None = None
    is_active: bool = True
    id: Any = None

    @classmethod
    def from_dict(cls, data: dict) -> "TaxConfigEntry":
        """Build an entry from a database row, YAML mapping or request body.

        Accepts both snake_case and camelCase keys.

        Raises:
            ValueError: If the tax type or dates cannot be parsed
        """
        rate = data.get("rate")
        applicable_to = data.get("applicable_to", data.get("applicableTo"))
        is_active = data.get("is_active", data.get("isActive", True))

        return cls(
            id=data.get("id"),
            name=data.get("name") or "",
            tax_type=TaxType(data.get("tax_type", data.get("taxType"))),
            rate=_to_decimal(rate) if rate is not None else None,
            brackets=[TaxBracket.from_dict(b) for b in data.get("brackets") or []],
            applicable_from=_to_date(data.get("applicable_from", data.get("applicableFrom"))),
            applicable_to=_to_date(applicable_to) if applicable_to else None,
            is_active=_to_bool(is_active) if is_active is not None else True,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "taxType": self.tax_type.value,
            "rate": float(self.rate) if self.rate is not None else None,
            "brackets": [b.to_dict() for b in self.brackets],
            "applicableFrom": self.applicable_from.isoformat(),
            "applicableTo": self.applicable_to.isoformat() if self.applicable_to else None,
            "isActive": self.is_active,
        }


def _to_decimal(value: Any) -> Decimal:
    try:
        result = Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"Invalid numeric value: {value!r}")

    if not result.is_finite():
        raise ValueError(f"Invalid numeric value: {value!r}")
    return result


TRUE_STRINGS = {"true", "t", "yes", "y", "1", "on"}
FALSE_STRINGS = {"false", "f", "no", "n", "0", "off", ""}


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in TRUE_STRINGS:
            return True
        if normalized in FALSE_STRINGS:
            return False
        raise ValueError(f"Invalid boolean value: {value!r}")
    return bool(value)


def _to_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value:
        return date.fromisoformat(value[:10])
    raise ValueError(f"Invalid date value: {value!r}")


def is_applicable(entry: TaxConfigEntry, as_of: date) -> bool:
    """Check whether an entry is in force on the given date."""
    if not entry.is_active:
        return False
    if entry.applicable_from > as_of:
        return False
    return entry.applicable_to is None or entry.applicable_to >= as_of


def parse_entries(rows: Iterable[dict | TaxConfigEntry]) -> list[TaxConfigEntry]:
    """Parse raw configuration rows, skipping the ones that cannot be read."""
    entries = []

    for row in rows:
        if isinstance(row, TaxConfigEntry):
            entries.append(row)
            continue
        try:
            entries.append(TaxConfigEntry.from_dict(row))
        except (ValueError, TypeError, AttributeError, InvalidOperation) as e:
            name = row.get("name") if isinstance(row, dict) else row
            logger.warning(f"Skipping malformed tax configuration {name!r}: {e}")

    return entries


def resolve_tax_rates(
    entries: Iterable[dict | TaxConfigEntry],
    as_of: date | datetime | None = None
) -> TaxRateSet:
    """Resolve the active rate set for a date.

    When several entries of the same type are in force, the one with the
    latest applicable_from wins; on equal dates the later entry wins.

    Args:
        entries: Tax configuration entries or raw rows
        as_of: Effective date (default: today)

    Returns:
        Fully populated TaxRateSet, never raises
    """
    if as_of is None:
        as_of = date.today()
    elif isinstance(as_of, datetime):
        as_of = as_of.date()

    selected: dict[TaxType, TaxConfigEntry] = {}

    for entry in parse_entries(entries):
        if not is_applicable(entry, as_of):
            continue
        if entry.tax_type == TaxType.APIT and not entry.brackets:
            continue

        current = selected.get(entry.tax_type)
        if current is None or entry.applicable_from >= current.applicable_from:
            selected[entry.tax_type] = entry

    rates = {}
    for tax_type, default in DEFAULT_SIMPLE_RATES.items():
        entry = selected.get(tax_type)
        if entry is None:
            logger.debug(f"No active {tax_type.value} configuration, using default {default}")
            rates[tax_type] = default
        elif not entry.rate:
            logger.warning(
                f"Tax configuration {entry.name!r} has no rate, using default {default}"
            )
            rates[tax_type] = default
        else:
            rates[tax_type] = entry.rate

    apit_entry = selected.get(TaxType.APIT)
    if apit_entry is None:
        logger.debug("No active APIT configuration, using default bracket table")
        brackets = DEFAULT_APIT_BRACKETS
    else:
        brackets = tuple(sorted(apit_entry.brackets, key=lambda b: b.min_income))

    return TaxRateSet(
        epf_employee_rate=rates[TaxType.EPF_EMPLOYEE],
        epf_employer_rate=rates[TaxType.EPF_EMPLOYER],
        etf_rate=rates[TaxType.ETF],
        stamp_fee=rates[TaxType.STAMP_FEE],
        apit_brackets=brackets,
    )


def validate_brackets(brackets: list[TaxBracket]) -> list[str]:
    """Check an APIT bracket table for gaps in structure.

    Args:
        brackets: Brackets in the order they were supplied

    Returns:
        List of problems, empty when the table is usable
    """
    if not brackets:
        return ["At least one bracket is required"]

    errors = []

    if brackets[0].min_income != 0:
        errors.append("First bracket must start at 0")

    for i, bracket in enumerate(brackets):
        if bracket.rate < 0:
            errors.append(f"Bracket {i + 1} has a negative rate")

        if bracket.max_income is not None and bracket.max_income < bracket.min_income:
            errors.append(f"Bracket {i + 1} ends before it starts")

        if i == 0:
            continue

        previous = brackets[i - 1]
        if bracket.min_income <= previous.min_income:
            errors.append(f"Bracket {i + 1} is not in ascending order")
        elif previous.max_income is None:
            errors.append(f"Bracket {i} is open-ended but is not the last bracket")
        elif bracket.min_income <= previous.max_income:
            errors.append(f"Bracket {i + 1} overlaps bracket {i}")

    if brackets[-1].max_income is not None:
        errors.append("Last bracket must have no upper limit")

    return errors


def load_tax_config_file(path: Path | str) -> list[TaxConfigEntry]:
    """Load tax configuration entries from a YAML file.

    Args:
        path: Path to tax_config.yaml

    Returns:
        Parsed entries, empty if the file does not exist
    """
    path = Path(path)
    if not path.exists():
        logger.warning(f"Tax configuration file not found: {path}")
        return []

    with open(path) as f:
        data = yaml.safe_load(f) or {}

    return parse_entries(data.get("tax_configs", []))


def default_tax_config_entries(applicable_from: date | None = None) -> list[TaxConfigEntry]:
    """Seed entries for the statutory simple rates."""
    applicable_from = applicable_from or date.today()

    return [
        TaxConfigEntry(
            name="EPF Employee Contribution",
            tax_type=TaxType.EPF_EMPLOYEE,
            rate=DEFAULT_EPF_EMPLOYEE_RATE,
            applicable_from=applicable_from,
        ),
        TaxConfigEntry(
            name="EPF Employer Contribution",
            tax_type=TaxType.EPF_EMPLOYER,
            rate=DEFAULT_EPF_EMPLOYER_RATE,
            applicable_from=applicable_from,
        ),
        TaxConfigEntry(
            name="ETF Contribution",
            tax_type=TaxType.ETF,
            rate=DEFAULT_ETF_RATE,
            applicable_from=applicable_from,
        ),
        TaxConfigEntry(
            name="Stamp Fee",
            tax_type=TaxType.STAMP_FEE,
            rate=DEFAULT_STAMP_FEE,
            applicable_from=applicable_from,
        ),
    ]


class TaxRateProvider:
    """Caches resolved rate sets for a configuration source."""

    def __init__(
        self,
        load_entries: Callable[[], Iterable[dict | TaxConfigEntry]],
        cache_ttl_seconds: float = 60,
        clock: Callable[[], float] = time.monotonic,
        max_cache_entries: int = 128
    ):
        """Initialize provider.

        Args:
            load_entries: Callable returning the current configuration rows
            cache_ttl_seconds: How long a resolved set is reused, 0 disables
            clock: Monotonic time source
            max_cache_entries: Most as-of dates kept in the cache at once
        """
        self.load_entries = load_entries
        self.cache_ttl_seconds = cache_ttl_seconds
        self.clock = clock
        self.max_cache_entries = max_cache_entries
        self._cache: dict[date, tuple[float, TaxRateSet]] = {}

    def get_active_rates(self, as_of: date | datetime | None = None) -> TaxRateSet:
        """Get the rate set in force on a date.

        Falls back to defaults if the configuration source fails.
        """
        if as_of is None:
            as_of = date.today()
        elif isinstance(as_of, datetime):
            as_of = as_of.date()

        now = self.clock()
        cached = self._cache.get(as_of)
        if cached and self.cache_ttl_seconds > 0 and now - cached[0] < self.cache_ttl_seconds:
            logger.debug(f"Using cached tax rates for {as_of}")
            return cached[1]

        try:
            entries = list(self.load_entries())
        except Exception as e:
            logger.warning(f"Failed to load tax configuration, using defaults: {e}")
            entries = []

        try:
            rates = resolve_tax_rates(entries, as_of)
        except Exception as e:
            logger.error(f"Failed to resolve tax configuration, using defaults: {e}")
            rates = TaxRateSet()

        if self.cache_ttl_seconds > 0:
            self._store(as_of, now, rates)

        return rates

    def _store(self, as_of: date, now: float, rates: TaxRateSet) -> None:
        expired = [
            key for key, (stored_at, _) in self._cache.items()
            if now - stored_at >= self.cache_ttl_seconds
        ]
        for key in expired:
            del self._cache[key]

        self._cache.pop(as_of, None)
        while self._cache and len(self._cache) >= self.max_cache_entries:
            # Oldest insertion first
            del self._cache[next(iter(self._cache))]

        self._cache[as_of] = (now, rates)

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def invalidate(self) -> None:
        """Drop cached rate sets."""
        self._cache.clear()
