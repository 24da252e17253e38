"""Unit tests for the engine settings, money helpers and formatting."""

import pytest

from envelope_budget.engine.config import get_config_value, get_constant, load_config
from envelope_budget.formatting import escape_dollar_for_markdown, escape_markdown_dollars, format_currency
from envelope_budget.money import round_money, split_evenly, split_proportionally, to_cents


def test_engine_constants() -> None:
    assert get_constant('balance_tolerance') == 0.01
    assert get_constant('default_pay_cycle') == 'fortnightly'
    assert load_config('engine')['priority_order'] == ['essential', 'important', 'discretionary']


def test_config_value_falls_back_to_default() -> None:
    assert get_config_value('engine', 'constants', 'on_track_band') == 50.0
    assert get_config_value('engine', 'constants', 'missing', default=3) == 3
    assert get_config_value('nope', 'anything', default='x') == 'x'


def test_load_config_missing_file() -> None:
    with pytest.raises(FileNotFoundError):
        load_config('does_not_exist')


def test_money_helpers() -> None:
    assert to_cents(0.1 + 0.2) == 30
    assert round_money(1384.615) == 1384.62
    assert split_evenly(100, 3) == [34, 33, 33]
    assert sum(split_proportionally(1000, [2600, 300])) == 1000
    with pytest.raises(ValueError):
        to_cents(float('nan'))


def test_currency_formatting() -> None:
    assert format_currency(-50) == '-$50.00'
    assert format_currency(1234.5, include_sign=False) == '1,234.50'
    assert escape_dollar_for_markdown(5) == '\\$5.00'
    assert escape_markdown_dollars('Top up $5 of $10') == 'Top up \\$5 of \\$10'
