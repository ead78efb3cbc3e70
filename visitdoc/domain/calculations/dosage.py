"""Point-of-care dosage calculations.

Pure functions: every input is in clinical units (kg, cm, years, mg/dL) and every
result keeps the exact floating point value next to its display text. Inputs typed
into a form may be passed as strings; they are parsed strictly and never clamped.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from numbers import Real

from visitdoc.domain.constants import Sex
from visitdoc.errors import InvalidInputError, MissingAgeError

FEMALE_CRCL_FACTOR = 0.85
PEDIATRIC_AGE_LIMIT = 18


@dataclass(frozen=True, slots=True)
class DoseResult:
    total_dose: float
    unit: str = "mg"
    bsa_m2: float | None = None

    @property
    def formatted(self) -> str:
        return f"{self.total_dose:.2f}"

    @property
    def formatted_bsa(self) -> str | None:
        return None if self.bsa_m2 is None else f"{self.bsa_m2:.2f}"

    def as_dosage(self) -> str:
        return f"{self.formatted} {self.unit}"


@dataclass(frozen=True, slots=True)
class BsaResult:
    bsa_m2: float

    @property
    def formatted(self) -> str:
        return f"{self.bsa_m2:.2f}"


@dataclass(frozen=True, slots=True)
class CreatinineClearanceResult:
    crcl_ml_min: float
    is_female: bool
    is_pediatric: bool

    @property
    def formatted(self) -> str:
        return f"{self.crcl_ml_min:.1f}"


def weight_based_dose(weight_kg: object, dose_per_kg: object, *, unit: str = "mg") -> DoseResult:
    weight = _positive(weight_kg, "weight_kg")
    dose = _non_negative(dose_per_kg, "dose_per_kg")
    return DoseResult(total_dose=weight * dose, unit=unit)


def body_surface_area(weight_kg: object, height_cm: object) -> BsaResult:
    """Mosteller: sqrt((height_cm * weight_kg) / 3600)."""
    weight = _positive(weight_kg, "weight_kg")
    height = _positive(height_cm, "height_cm")
    return BsaResult(bsa_m2=_mosteller(weight, height))


def bsa_based_dose(weight_kg: object, height_cm: object, dose_per_m2: object, *, unit: str = "mg") -> DoseResult:
    weight = _positive(weight_kg, "weight_kg")
    height = _positive(height_cm, "height_cm")
    dose = _non_negative(dose_per_m2, "dose_per_m2")
    bsa = _mosteller(weight, height)
    return DoseResult(total_dose=bsa * dose, unit=unit, bsa_m2=bsa)


def creatinine_clearance(
    age_years: object,
    weight_kg: object,
    serum_creatinine_mg_dl: object,
    *,
    sex: Sex | str = Sex.MALE,
) -> CreatinineClearanceResult:
    """Cockcroft-Gault estimate in mL/min, multiplied by 0.85 for female patients."""
    if age_years is None or (isinstance(age_years, str) and not age_years.strip()):
        raise MissingAgeError("Patient age is required to estimate creatinine clearance")
    age = _as_number(age_years, "age_years")
    if age < 0 or age >= 140:
        raise InvalidInputError("Age must be between 0 and 139 years", field="age_years")
    weight = _positive(weight_kg, "weight_kg")
    creatinine = _as_number(serum_creatinine_mg_dl, "serum_creatinine_mg_dl")
    if creatinine == 0:
        raise InvalidInputError("Serum creatinine cannot be zero", field="serum_creatinine_mg_dl")
    if creatinine < 0:
        raise InvalidInputError("Serum creatinine must be positive", field="serum_creatinine_mg_dl")
    try:
        is_female = Sex(sex) == Sex.FEMALE
    except ValueError as exc:
        raise InvalidInputError(f"Unknown sex: {sex}", field="sex") from exc

    base = ((140 - age) * weight) / (72 * creatinine)
    crcl = base * FEMALE_CRCL_FACTOR if is_female else base
    return CreatinineClearanceResult(
        crcl_ml_min=crcl,
        is_female=is_female,
        is_pediatric=age < PEDIATRIC_AGE_LIMIT,
    )


def _mosteller(weight_kg: float, height_cm: float) -> float:
    return math.sqrt((height_cm * weight_kg) / 3600)


def _as_number(value: object, field: str) -> float:
    if isinstance(value, bool):
        raise InvalidInputError(f"{field} must be a number", field=field)
    if isinstance(value, Real):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError as exc:
            raise InvalidInputError(f"{field} must be a number", field=field) from exc
    else:
        raise InvalidInputError(f"{field} must be a number", field=field)
    if not math.isfinite(number):
        raise InvalidInputError(f"{field} must be a finite number", field=field)
    return number


def _positive(value: object, field: str) -> float:
    number = _as_number(value, field)
    if number <= 0:
        raise InvalidInputError(f"{field} must be greater than zero", field=field)
    return number


def _non_negative(value: object, field: str) -> float:
    number = _as_number(value, field)
    if number < 0:
        raise InvalidInputError(f"{field} cannot be negative", field=field)
    return number
