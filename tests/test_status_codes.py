"""Tests for status codes and vote synthesis."""

import random

import numpy as np
import pytest

from oracle_relay.status_codes import ALL_CODES, StatusCode, StatusCodeGenerator, describe

# chi-square critical value, 5 degrees of freedom, alpha = 0.001
CHI2_CRITICAL_DF5 = 20.515


def test_code_values_match_contract():
    assert [int(c) for c in ALL_CODES] == [0, 10, 20, 30, 40, 50]


def test_only_airline_delay_is_payable():
    payable = [c for c in StatusCode if c.is_payable]
    assert payable == [StatusCode.LATE_AIRLINE]


def test_describe_labels():
    assert describe(20) == 'DELAYED, PAYABLE'
    assert describe(10) == 'ON TIME'
    assert describe(99) == 'OTHER DELAY'


def test_parse_accepts_names_and_numbers():
    assert StatusCode.parse('late_airline') is StatusCode.LATE_AIRLINE
    assert StatusCode.parse('30') is StatusCode.LATE_WEATHER
    assert StatusCode.parse(40) is StatusCode.LATE_TECHNICAL
    with pytest.raises(ValueError):
        StatusCode.parse(15)


def test_zero_error_probability_always_desired():
    gen = StatusCodeGenerator(desired_code=20, p_error=0.0, rng=random.Random(1))
    assert {gen.next_code() for _ in range(500)} == {StatusCode.LATE_AIRLINE}


def test_full_error_probability_covers_all_codes():
    gen = StatusCodeGenerator(desired_code=20, p_error=1.0, rng=random.Random(2))
    assert {gen.next_code() for _ in range(1000)} == set(ALL_CODES)


@pytest.mark.parametrize('p_error', [-0.1, 1.5])
def test_error_probability_bounds(p_error):
    with pytest.raises(ValueError):
        StatusCodeGenerator(desired_code=20, p_error=p_error)


def test_desired_code_must_be_known():
    with pytest.raises(ValueError):
        StatusCodeGenerator(desired_code=25)


def test_distribution_matches_mixture():
    """Desired with probability 1 - p, uniform over all codes with probability p."""
    n = 6000
    p_error = 0.3
    gen = StatusCodeGenerator(desired_code=20, p_error=p_error, rng=random.Random(20211119))

    draws = [int(gen.next_code()) for _ in range(n)]
    observed = np.array([draws.count(int(c)) for c in ALL_CODES], dtype=float)

    uniform_share = p_error / len(ALL_CODES)
    probs = np.array([
        (1 - p_error) + uniform_share if c == StatusCode.LATE_AIRLINE else uniform_share
        for c in ALL_CODES
    ])
    expected = probs * n

    chi2 = float(((observed - expected) ** 2 / expected).sum())
    assert chi2 < CHI2_CRITICAL_DF5
