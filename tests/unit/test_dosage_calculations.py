from __future__ import annotations

import math

import pytest

from visitdoc.domain.calculations.dosage import (
    body_surface_area,
    bsa_based_dose,
    creatinine_clearance,
    weight_based_dose,
)
from visitdoc.domain.constants import Sex
from visitdoc.errors import InvalidInputError, MissingAgeError


def test_weight_based_dose_formats_two_decimals() -> None:
    result = weight_based_dose(70, 5)
    assert result.total_dose == 350.0
    assert result.formatted == "350.00"
    assert result.as_dosage() == "350.00 mg"


def test_weight_based_dose_accepts_form_strings() -> None:
    result = weight_based_dose(" 12.5 ", "0.4", unit="mL")
    assert result.total_dose == pytest.approx(5.0)
    assert result.as_dosage() == "5.00 mL"


@pytest.mark.parametrize("weight", ["abc", "", float("nan"), float("inf"), None, True])
def test_weight_based_dose_rejects_non_finite_or_non_numeric(weight) -> None:
    with pytest.raises(InvalidInputError) as exc_info:
        weight_based_dose(weight, 5)
    assert exc_info.value.field == "weight_kg"


def test_weight_based_dose_rejects_negative_dose() -> None:
    with pytest.raises(InvalidInputError):
        weight_based_dose(70, -1)


def test_bsa_uses_mosteller_exactly() -> None:
    result = body_surface_area(70, 175)
    assert result.bsa_m2 == math.sqrt((175 * 70) / 3600)
    assert result.bsa_m2 == pytest.approx(1.8447, abs=1e-4)
    assert result.formatted == "1.84"


def test_bsa_based_dose_keeps_bsa_and_dose() -> None:
    result = bsa_based_dose(70, 175, 100)
    assert result.bsa_m2 == pytest.approx(1.8447, abs=1e-4)
    assert result.total_dose == pytest.approx(184.47, abs=0.01)
    assert result.formatted == "184.47"
    assert result.formatted_bsa == "1.84"


def test_bsa_rejects_zero_height() -> None:
    with pytest.raises(InvalidInputError) as exc_info:
        body_surface_area(70, 0)
    assert exc_info.value.field == "height_cm"


def test_creatinine_clearance_female_factor() -> None:
    result = creatinine_clearance(60, 70, 1.0, sex=Sex.FEMALE)
    assert result.crcl_ml_min == pytest.approx(66.11, abs=0.01)
    assert result.formatted == "66.1"
    assert result.is_female is True
    assert result.is_pediatric is False


def test_creatinine_clearance_male() -> None:
    result = creatinine_clearance("60", "70", "1.0", sex="male")
    assert result.crcl_ml_min == pytest.approx(77.78, abs=0.01)
    assert result.formatted == "77.8"


def test_creatinine_clearance_flags_pediatric_patients() -> None:
    assert creatinine_clearance(10, 30, 0.5).is_pediatric is True
    assert creatinine_clearance(0, 3.5, 0.3).is_pediatric is True


@pytest.mark.parametrize("age", [None, "", "   "])
def test_missing_age_is_checked_before_other_inputs(age) -> None:
    with pytest.raises(MissingAgeError):
        creatinine_clearance(age, "not-a-number", 0)


def test_zero_creatinine_is_invalid() -> None:
    with pytest.raises(InvalidInputError) as exc_info:
        creatinine_clearance(60, 70, 0)
    assert exc_info.value.field == "serum_creatinine_mg_dl"
    assert "zero" in str(exc_info.value)


@pytest.mark.parametrize(
    ("age", "weight", "creatinine", "field"),
    [
        (140, 70, 1.0, "age_years"),
        (-1, 70, 1.0, "age_years"),
        (60, "heavy", 1.0, "weight_kg"),
        (60, 70, "n/a", "serum_creatinine_mg_dl"),
        (60, 70, -0.5, "serum_creatinine_mg_dl"),
    ],
)
def test_creatinine_clearance_invalid_inputs(age, weight, creatinine, field) -> None:
    with pytest.raises(InvalidInputError) as exc_info:
        creatinine_clearance(age, weight, creatinine)
    assert exc_info.value.field == field


def test_creatinine_clearance_unknown_sex() -> None:
    with pytest.raises(InvalidInputError) as exc_info:
        creatinine_clearance(60, 70, 1.0, sex="other")
    assert exc_info.value.field == "sex"


def test_validation_errors_are_value_errors() -> None:
    with pytest.raises(ValueError):
        weight_based_dose("x", 1)
