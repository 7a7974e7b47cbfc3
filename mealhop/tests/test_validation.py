from __future__ import annotations

import pytest

from mealhop.recommendations.errors import InvalidRequestError
from mealhop.recommendations.validation import parse_request


def _body(**overrides):
    body = {
        "goal": "high-protein",
        "timeOfDay": "lunch",
        "budgetMax": 25,
        "radiusMiles": 3,
        "lat": 39.0997,
        "lng": -94.5786,
    }
    body.update(overrides)
    return body


def test_valid_body_builds_request():
    request = parse_request(
        _body(lastMeal="oatmeal", lastMealTime="8:00am", activityLevel="workout", lastMealHeaviness="light")
    )

    assert request.goal == "high-protein"
    assert request.time_of_day == "lunch"
    assert request.budget_max == 25.0
    assert request.radius_miles == 3.0
    assert request.last_meal == "oatmeal"
    assert request.activity_level == "workout"
    assert request.last_meal_heaviness == "light"


@pytest.mark.parametrize("field", ["goal", "timeOfDay", "budgetMax", "radiusMiles"])
def test_missing_required_field(field):
    body = _body()
    del body[field]

    with pytest.raises(InvalidRequestError, match="Missing required fields"):
        parse_request(body)


def test_empty_required_field_counts_as_missing():
    with pytest.raises(InvalidRequestError, match="Missing required fields"):
        parse_request(_body(goal=""))


@pytest.mark.parametrize("field", ["lat", "lng"])
def test_missing_location(field):
    body = _body()
    del body[field]

    with pytest.raises(InvalidRequestError, match="Location is required"):
        parse_request(body)


def test_zero_coordinates_are_a_valid_location():
    request = parse_request(_body(lat=0, lng=0))

    assert (request.lat, request.lng) == (0.0, 0.0)


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"goal": "bulk"}, "Invalid goal. Must be one of: high-protein, low-cal, balanced, low-carb"),
        ({"timeOfDay": "brunch"}, "Invalid timeOfDay. Must be one of: breakfast, lunch, dinner, snack"),
        ({"activityLevel": "marathon"}, "Invalid activityLevel"),
        ({"lastMealHeaviness": "huge"}, "Invalid lastMealHeaviness"),
        ({"lat": "north"}, "Invalid lat"),
    ],
)
def test_invalid_values(overrides, message):
    with pytest.raises(InvalidRequestError) as excinfo:
        parse_request(_body(**overrides))

    assert str(excinfo.value).startswith(message)


def test_unparseable_numbers_fall_back_to_defaults():
    request = parse_request(_body(budgetMax="cheap", radiusMiles=-2))

    assert request.budget_max == 30.0
    assert request.radius_miles == 5.0


def test_numeric_strings_are_accepted():
    request = parse_request(_body(budgetMax="18.5", radiusMiles="2"))

    assert request.budget_max == 18.5
    assert request.radius_miles == 2.0


def test_blank_optional_fields_are_dropped():
    request = parse_request(_body(lastMeal="", activityLevel="", lastMealHeaviness=None))

    assert request.last_meal is None
    assert request.activity_level is None
    assert request.last_meal_heaviness is None


@pytest.mark.parametrize("body", [None, [], "goal=high-protein"])
def test_non_object_body(body):
    with pytest.raises(InvalidRequestError, match="JSON object"):
        parse_request(body)
