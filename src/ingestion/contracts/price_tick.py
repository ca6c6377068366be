from __future__ import annotations

from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, ValidationError

EpochMs = Annotated[int, Field(ge=0, strict=True)]
StrictText = Annotated[str, Field(strict=True)]


class PriceTick(BaseModel):
    """
    One bookTicker record, parsed from a single input line.

    Wire format (Binance USD-M futures bookTicker):
        {"e":"bookTicker","u":1875301568520,"s":"TURBOUSDT","b":"0.3261",
         "B":"226654.3","a":"0.3262","A":"75762.5","T":1662022800005,"E":1662022800010}

    Semantics:
        - `ask_price`       : the value the OHLC engine aggregates
        - `timestamp_start` : places the tick in the rolling window (epoch ms)
        - bid side and quantities are carried but unused by aggregation

    Unknown keys reject the record. Prices/quantities accept numbers or
    numeric strings, but must be finite; `u`, `T`, `E` must be JSON integers.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True, allow_inf_nan=False)

    event_name: StrictText = Field(alias="e")
    cat: EpochMs = Field(alias="u")
    ticker: StrictText = Field(alias="s", min_length=1)
    bid_price: float = Field(alias="b")
    bid_quantity: float = Field(alias="B")
    ask_price: float = Field(alias="a")
    ask_quantity: float = Field(alias="A")
    timestamp_start: EpochMs = Field(alias="T")
    timestamp_end: EpochMs = Field(alias="E")


def parse_price_line(line: str | bytes) -> PriceTick | None:
    """Parse one NDJSON line; any invalid line yields None."""
    try:
        return PriceTick.model_validate_json(line)
    except ValidationError:
        return None
