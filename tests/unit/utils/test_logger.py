from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path

from ohlc_engine.ohlc import RollingOHLC
from ohlc_engine.utils.logger import (
    ContextFilter,
    JsonFormatter,
    _debug_module_matches,
    get_logger,
    init_logging,
    safe_jsonable,
)


class Side(Enum):
    ASK = "ask"


@dataclass
class Sample:
    path: Path
    created: datetime
    side: Side


def test_safe_jsonable_handles_common_types() -> None:
    payload = {
        "path": Path("foo/bar"),
        "created": datetime(2020, 1, 1, 0, 0, 0),
        "enum": Side.ASK,
        "sample": Sample(Path("x/y"), datetime(2021, 1, 2, 3, 4, 5), Side.ASK),
        "ohlc": RollingOHLC(ticker="A", open=1.0),
        "exc": ValueError("boom"),
        "tuple": (1, 2),
        "set": {3, 4},
    }

    out = safe_jsonable(payload)
    json.dumps(out)
    assert out["path"] == "foo/bar"
    assert "2020" in out["created"]
    assert out["enum"] == "ask"
    assert out["ohlc"]["ticker"] == "A"
    assert out["exc"] == "boom"


def test_debug_module_matching() -> None:
    assert _debug_module_matches("ohlc_engine.actor", "ohlc_engine")
    assert _debug_module_matches("ohlc_engine.OHLCActor", "OHLCActor")
    assert not _debug_module_matches("ingestion.book_ticker", "ohlc_engine")
    assert not _debug_module_matches("ohlc_engine.actor", " ")


def test_json_formatter_lifts_category() -> None:
    record = logging.LogRecord("ohlc_engine.test", logging.WARNING, __file__, 1, "ohlc.out_of_order_tick", None, None)
    record.context = {"category": "data_integrity", "symbol": "AAA"}
    out = json.loads(JsonFormatter().format(record))
    assert out["event"] == "ohlc.out_of_order_tick"
    assert out["category"] == "data_integrity"
    assert out["context"] == {"symbol": "AAA"}


def test_init_logging_dictconfig_applied(tmp_path: Path) -> None:
    config = {
        "active_profile": "default",
        "profiles": {
            "default": {
                "level": "INFO",
                "handlers": {"console": {"enabled": True}},
                "format": {"json": True},
            },
            "debug": {
                "level": "DEBUG",
                "debug": {"enabled": True, "modules": ["ohlc_engine"]},
            },
        },
    }
    config_path = tmp_path / "logging.json"
    config_path.write_text(json.dumps(config), encoding="utf-8")

    init_logging(config_path=str(config_path), run_id="r1", mode="debug")
    logger = get_logger("ohlc_engine.test")

    assert logging.getLogger().level == logging.DEBUG
    assert logger.getEffectiveLevel() == logging.DEBUG

    root_handlers = logging.getLogger().handlers
    assert root_handlers
    assert any(isinstance(h.formatter, JsonFormatter) for h in root_handlers)
    assert any(any(isinstance(f, ContextFilter) for f in h.filters) for h in root_handlers)

    record = logging.LogRecord("ohlc_engine.test", logging.INFO, __file__, 1, "x", None, None)
    ContextFilter().filter(record)
    assert record.context == {"run_id": "r1", "mode": "debug"}


def test_repo_logging_config_loads() -> None:
    repo_cfg = Path(__file__).resolve().parents[3] / "configs" / "logging.json"
    init_logging(repo_cfg)
    assert logging.getLogger().level == logging.INFO
