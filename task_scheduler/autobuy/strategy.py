"""Plugin that buys BTC periodically, sized by the AHR999 index."""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Callable

from ..exchange import BTC_SYMBOL, BinanceClient, ExchangeError
from ..plugin import Plugin, Task
from ..push.api import PushAPI, default_config, default_push_options
from ..push.pushers import PushError
from ..push.types import Message, PushMethod, new_normal_message
from .ahr999 import Ahr999Source
from .amount import AmountError, calculate_amount

logger = logging.getLogger(__name__)

RESULT_NOT_RUN = "未执行"
RESULT_SUCCESS = "定投成功"
RESULT_FAILED = "定投失败"


def parse_timer_table(raw: Any) -> dict[str, float]:
    """Read a multiplier table given as a JSON object string."""
    if not isinstance(raw, str):
        raise ValueError("ahr999_timer_table must be a string")
    try:
        data = json.loads(raw)
    except ValueError as exc:
        raise ValueError(f"parsing ahr999_timer_table JSON failed: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError("parsing ahr999_timer_table JSON failed: not an object")
    table: dict[str, float] = {}
    for range_str, multiplier in data.items():
        if isinstance(multiplier, bool) or not isinstance(multiplier, (int, float)):
            raise ValueError(f"invalid multiplier: {multiplier!r}")
        table[range_str] = float(multiplier)
    return table


def _default_pusher() -> PushAPI:
    api = PushAPI()
    try:
        api.initialize(default_config(), PushMethod.WECHAT)
    except (ValueError, OSError, RuntimeError) as exc:
        logger.warning("initializing push API failed: %s", exc)
    return api


def _default_client() -> BinanceClient:
    return BinanceClient(
        os.environ.get("BINANCE_API_KEY", ""),
        os.environ.get("BINANCE_SECRET_KEY", ""),
        probe=True,
    )


class AutoBuyTask(Task):
    """Reads the AHR999 index, buys BTC accordingly and reports the outcome."""

    def __init__(
        self,
        config: dict[str, Any],
        base_amount: float,
        timer_table: dict[str, float],
        pusher: Any,
        ahr999_source: Any,
        client_factory: Callable[[], Any],
    ) -> None:
        self.name = "auto-buy"
        self.config = dict(config)
        self.base_amount = base_amount
        self.timer_table = dict(timer_table)
        self.pusher = pusher
        self.ahr999_source = ahr999_source
        self.client_factory = client_factory

    def execute(self) -> Message | None:
        """Run the strategy when enabled; return the report message, or None if disabled."""
        logger.info("starting auto-buy task")
        if self.config.get("enabled") is not True:
            logger.info("auto-buy task is disabled")
            return None
        debug = self.config.get("debug") is True
        message = self._run_strategy(debug)
        logger.info("auto-buy task finished")
        return message

    def _run_strategy(self, debug: bool) -> Message:
        price, ahr999_value = self.ahr999_source.current()
        if debug:
            logger.info("current BTC price: $%.2f", price)
            logger.info("current AHR999: %.3f", ahr999_value)

        amount = self.investment_amount(ahr999_value)
        if debug:
            logger.info("suggested amount: $%.2f", amount)

        result = RESULT_NOT_RUN
        detail = ""
        client = self.client_factory()
        if amount > 0:
            try:
                order = client.buy_best_price(BTC_SYMBOL, amount)
            except ExchangeError as exc:
                detail = str(exc)
                result = RESULT_FAILED
            else:
                detail = json.dumps(order, indent=2, ensure_ascii=False)
                result = RESULT_SUCCESS

        try:
            balance = client.btc_balance()
        except ExchangeError as exc:
            balance = str(exc)

        title = f"定投大饼 {result}: ${amount:.2f} USDT"
        content = (
            f"当前价格: ${price:.2f}\n\nAHR999: {ahr999_value:.3f}\n\n"
            f"BTC余额: {balance}\n\n详细信息: {detail}"
        )
        message = new_normal_message("auto-buy", title, content)
        if self.pusher is not None:
            try:
                self.pusher.push_now(message, default_push_options())
            except (PushError, ValueError, RuntimeError, OSError) as exc:
                logger.warning("pushing report failed: %s", exc)
        logger.info("%s\n%s", title, content)
        return message

    def investment_amount(self, ahr999_value: float) -> float:
        """Amount to invest for ``ahr999_value``."""
        if not self.timer_table:
            raise AmountError("no multiplier table configured")
        return calculate_amount(self.base_amount, ahr999_value, self.timer_table)

    def validate_config(self, config: dict[str, Any]) -> None:
        if "enabled" in config and not isinstance(config["enabled"], bool):
            raise ValueError("enabled must be a boolean")
        if "debug" in config and not isinstance(config["debug"], bool):
            raise ValueError("debug must be a boolean")


class AutoBuyPlugin(Plugin):
    """Creates auto-buy tasks."""

    name = "auto-buy"

    def __init__(
        self,
        *,
        pusher_factory: Callable[[], Any] | None = None,
        ahr999_source: Any = None,
        client_factory: Callable[[], Any] | None = None,
    ) -> None:
        self.pusher_factory = pusher_factory if pusher_factory is not None else _default_pusher
        self.ahr999_source = ahr999_source
        self.client_factory = client_factory if client_factory is not None else _default_client

    def create_task(self, config: dict[str, Any]) -> AutoBuyTask:
        base_raw = config.get("base_amount")
        if isinstance(base_raw, bool) or not isinstance(base_raw, (int, float)):
            raise ValueError("base_amount is missing from the configuration")
        if "ahr999_timer_table" not in config:
            raise ValueError("ahr999_timer_table is missing from the configuration")
        table = parse_timer_table(config["ahr999_timer_table"])
        source = self.ahr999_source if self.ahr999_source is not None else Ahr999Source()
        return AutoBuyTask(
            config=config,
            base_amount=float(base_raw),
            timer_table=table,
            pusher=self.pusher_factory(),
            ahr999_source=source,
            client_factory=self.client_factory,
        )

    def default_config(self) -> dict[str, Any]:
        return {"enabled": True, "debug": False}