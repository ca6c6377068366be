from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from ingestion.contracts.price_tick import PriceTick, parse_price_line

SAMPLE = (
    '{"e":"bookTicker","u":1875301568520,"s":"TURBOUSDT","b":"0.3261","B":"226654.3",'
    '"a":"0.3262","A":"75762.5","T":1662022800005,"E":1662022800010}'
)


def _raw(**overrides) -> dict:
    raw = json.loads(SAMPLE)
    raw.update(overrides)
    return raw


def test_deserialization_of_book_ticker_line() -> None:
    tick = parse_price_line(SAMPLE)
    assert tick == PriceTick(
        event_name="bookTicker",
        cat=1875301568520,
        ticker="TURBOUSDT",
        bid_price=0.3261,
        bid_quantity=226654.3,
        ask_price=0.3262,
        ask_quantity=75762.5,
        timestamp_start=1662022800005,
        timestamp_end=1662022800010,
    )


def test_numeric_prices_are_accepted_as_numbers_too() -> None:
    tick = parse_price_line(json.dumps(_raw(a=1.5, b=1)))
    assert tick is not None
    assert tick.ask_price == 1.5
    assert tick.bid_price == 1.0


def test_trailing_newline_is_tolerated() -> None:
    assert parse_price_line(SAMPLE + "\n") is not None


@pytest.mark.parametrize(
    "line",
    [
        "",
        "\n",
        "not json",
        SAMPLE[:-1],
        json.dumps(_raw(extra=1)),
        json.dumps({k: v for k, v in _raw().items() if k != "a"}),
        json.dumps(_raw(a="abc")),
        json.dumps(_raw(a="NaN")),
        json.dumps(_raw(a="inf")),
        json.dumps(_raw(B="-Infinity")),
        json.dumps(_raw(T="1662022800005")),
        json.dumps(_raw(T=-1)),
        json.dumps(_raw(u=1.5)),
        json.dumps(_raw(s="")),
        json.dumps(_raw(s=7)),
        json.dumps([1, 2, 3]),
    ],
)
def test_invalid_lines_are_rejected(line: str) -> None:
    assert parse_price_line(line) is None


def test_price_tick_is_immutable() -> None:
    tick = parse_price_line(SAMPLE)
    assert tick is not None
    with pytest.raises(ValidationError):
        tick.ask_price = 1.0  # type: ignore[misc]


def test_unknown_field_rejected_on_direct_validation() -> None:
    with pytest.raises(ValidationError):
        PriceTick.model_validate(_raw(z=0))


def test_non_finite_ask_rejected_on_direct_validation() -> None:
    with pytest.raises(ValidationError):
        PriceTick.model_validate(_raw(a=float("nan")))
