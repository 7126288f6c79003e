# tests/test_pricing.py
import pytest

from dojo.pricing import (
    calculate_family_price,
    family_rate,
    individual_price,
    member_type_for_program,
)


def test_single_adult_pays_list_price():
    p = calculate_family_price(["adult"])
    assert p.monthly_total == 100
    assert p.savings == 0
    assert p.member_count == 1


def test_single_kid_pays_list_price():
    p = calculate_family_price(["kid"])
    assert p.monthly_total == 75
    assert p.savings == 0


def test_two_members_flat_family_rate():
    p = calculate_family_price(["adult", "kid"])
    assert p.monthly_total == 150
    assert p.vs_individual == 175
    assert p.savings == 25


def test_three_members_add_fifty_each():
    p = calculate_family_price(["adult", "adult", "kid"])
    assert p.monthly_total == 200
    assert p.savings == 75
    assert {"type": "adult", "count": 2, "rate": 100} in p.breakdown
    assert {"type": "kid", "count": 1, "rate": 75} in p.breakdown


def test_empty_family_costs_nothing():
    p = calculate_family_price([])
    assert p.monthly_total == 0
    assert p.breakdown == []


def test_unknown_member_type_rejected():
    with pytest.raises(ValueError, match="Invalid member type: senior"):
        calculate_family_price(["adult", "senior"])


@pytest.mark.parametrize("n,expected", [(2, 150), (3, 200), (4, 250), (6, 350)])
def test_family_rate_tiers(n, expected):
    assert family_rate(n) == expected


def test_as_dict_uses_client_keys():
    d = calculate_family_price(["kid", "kid"]).as_dict()
    assert d["monthlyTotal"] == 150
    assert d["vsIndividual"] == 150
    assert d["savings"] == 0
    assert d["memberCount"] == 2


def test_program_maps_to_member_type():
    assert member_type_for_program("kids-bjj") == "kid"
    assert member_type_for_program("adult-bjj") == "adult"
    assert member_type_for_program(None) == "adult"
    assert individual_price("drop-in") == 20
