"""Client for the Binance spot REST interface."""

from __future__ import annotations

import hashlib
import hmac
import logging
import math
import os
import re
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any
from urllib.parse import urlencode

import requests

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.binance.com"
DEFAULT_PROXY = "http://127.0.0.1:7890"
BTC_SYMBOL = "BTCUSDT"
ETH_SYMBOL = "ETHUSDT"

_LEADING_FLOAT = re.compile(r"\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


class ExchangeError(Exception):
    """Raised when the exchange cannot be reached or rejects a request."""

    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


@dataclass(frozen=True)
class SymbolPrice:
    """Latest price of a trading pair."""

    symbol: str
    price: str


@dataclass(frozen=True)
class Kline:
    """One candlestick; prices and volumes are kept as the exchange sends them."""

    open_time: int
    open: str
    high: str
    low: str
    close: str
    volume: str
    close_time: int
    quote_asset_volume: str
    trade_count: int
    taker_buy_base_volume: str
    taker_buy_quote_volume: str

    @classmethod
    def from_row(cls, row: list[Any]) -> Kline:
        if not isinstance(row, (list, tuple)) or len(row) < 11:
            raise ExchangeError(f"malformed kline row: {row!r}")
        return cls(
            open_time=int(row[0]),
            open=str(row[1]),
            high=str(row[2]),
            low=str(row[3]),
            close=str(row[4]),
            volume=str(row[5]),
            close_time=int(row[6]),
            quote_asset_volume=str(row[7]),
            trade_count=int(row[8]),
            taker_buy_base_volume=str(row[9]),
            taker_buy_quote_volume=str(row[10]),
        )


def parse_price(text: str) -> float:
    """Read the leading decimal number of ``text``; raise ValueError if there is none."""
    match = _LEADING_FLOAT.match(text or "")
    if match is None:
        raise ValueError(f"cannot parse price from {text!r}")
    return float(match.group(1))


def _format_decimal(value: float) -> str:
    text = format(Decimal(repr(float(value))), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def _round5(value: float) -> float:
    return math.copysign(math.floor(abs(value) * 100000 + 0.5), value) / 100000


def _millis(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.astimezone()
    return int(value.timestamp() * 1000)


def _first(body: Any) -> Any:
    if isinstance(body, list):
        return body[0] if body else None
    return body


class BinanceClient:
    """Public market data, account queries and buy orders on Binance spot."""

    def __init__(
        self,
        api_key: str = "",
        secret_key: str = "",
        proxy_url: str = "",
        *,
        session: requests.Session | None = None,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 10.0,
        probe: bool = False,
    ) -> None:
        if not proxy_url:
            proxy_url = os.environ.get("HTTPS_PROXY") or DEFAULT_PROXY
        if not api_key or not secret_key:
            logger.warning("api key or secret key is empty")
        self.api_key = api_key
        self.secret_key = secret_key
        self.proxy_url = proxy_url
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        if session is None:
            session = requests.Session()
            session.proxies.update({"http": proxy_url, "https": proxy_url})
        self._session = session
        if probe:
            try:
                logger.info("exchange client ready, BTC price %s", self.btc_price())
            except ExchangeError as exc:
                logger.warning("exchange client ready, BTC price unavailable: %s", exc)

    def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        *,
        signed: bool = False,
    ) -> Any:
        params = dict(params or {})
        headers: dict[str, str] = {}
        if signed:
            if not self.api_key or not self.secret_key:
                raise ExchangeError("api key and secret key are required")
            params["timestamp"] = int(time.time() * 1000)
            query = urlencode(params)
            params["signature"] = hmac.new(
                self.secret_key.encode(), query.encode(), hashlib.sha256
            ).hexdigest()
            headers["X-MBX-APIKEY"] = self.api_key
        try:
            response = self._session.request(
                method,
                self.base_url + path,
                params=params,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise ExchangeError(f"request failed: {exc}") from exc
        try:
            body = response.json()
        except ValueError:
            body = None
        if response.status_code >= 400:
            if isinstance(body, dict) and "msg" in body:
                code = body.get("code")
                raise ExchangeError(f"api error code={code}, msg={body['msg']}", code=code)
            raise ExchangeError(f"http status {response.status_code}")
        return body

    def ping(self) -> None:
        """Check that the exchange answers."""
        try:
            self._request("GET", "/api/v3/ping")
        except ExchangeError as exc:
            raise ExchangeError(f"ping failed: {exc}", exc.code) from exc

    def latest_price(self, symbol: str) -> SymbolPrice:
        """Latest traded price of ``symbol``."""
        try:
            body = self._request("GET", "/api/v3/ticker/price", {"symbol": symbol})
        except ExchangeError as exc:
            raise ExchangeError(f"fetching {symbol} price failed: {exc}", exc.code) from exc
        item = _first(body)
        if not isinstance(item, dict):
            raise ExchangeError(f"no price data for {symbol}")
        return SymbolPrice(symbol=str(item.get("symbol", symbol)), price=str(item.get("price", "")))

    def _price_of(self, symbol: str) -> float:
        price = self.latest_price(symbol)
        try:
            return parse_price(price.price)
        except ValueError as exc:
            raise ExchangeError(f"parsing price failed: {exc}") from exc

    def btc_price(self) -> float:
        """Latest BTC/USDT price."""
        return self._price_of(BTC_SYMBOL)

    def eth_price(self) -> float:
        """Latest ETH/USDT price."""
        return self._price_of(ETH_SYMBOL)

    def server_time(self) -> datetime:
        """Exchange clock as an aware UTC datetime."""
        try:
            body = self._request("GET", "/api/v3/time")
            millis = int(body["serverTime"])
        except ExchangeError as exc:
            raise ExchangeError(f"fetching server time failed: {exc}", exc.code) from exc
        except (TypeError, KeyError, ValueError) as exc:
            raise ExchangeError(f"fetching server time failed: {exc}") from exc
        return datetime.fromtimestamp(millis // 1000, tz=timezone.utc) + timedelta(
            milliseconds=millis % 1000
        )

    def health_check(self) -> None:
        """Ping, read the clock and read the BTC price; raise on the first failure."""
        try:
            self.ping()
        except ExchangeError as exc:
            raise ExchangeError(f"ping check failed: {exc}", exc.code) from exc
        try:
            self.server_time()
        except ExchangeError as exc:
            raise ExchangeError(f"server time check failed: {exc}", exc.code) from exc
        try:
            self.btc_price()
        except ExchangeError as exc:
            raise ExchangeError(f"BTC price check failed: {exc}", exc.code) from exc

    def _klines(self, symbol: str, params: dict[str, Any]) -> list[Kline]:
        try:
            body = self._request("GET", "/api/v3/klines", {"symbol": symbol, **params})
        except ExchangeError as exc:
            raise ExchangeError(f"fetching {symbol} klines failed: {exc}", exc.code) from exc
        return [Kline.from_row(row) for row in body or []]

    def klines(self, symbol: str, interval: str, limit: int) -> list[Kline]:
        """The latest ``limit`` candlesticks of ``symbol``."""
        return self._klines(symbol, {"interval": interval, "limit": limit})

    def klines_between(
        self, symbol: str, interval: str, start: datetime, end: datetime
    ) -> list[Kline]:
        """Candlesticks of ``symbol`` opened between ``start`` and ``end``."""
        return self._klines(
            symbol,
            {"interval": interval, "startTime": _millis(start), "endTime": _millis(end)},
        )

    @staticmethod
    def _close_prices(klines: list[Kline]) -> list[tuple[float, float]]:
        prices = []
        for kline in klines:
            try:
                prices.append((float(kline.open_time), parse_price(kline.close)))
            except ValueError:
                continue
        return prices

    def btc_history_prices(self, days: int) -> list[tuple[float, float]]:
        """Daily ``(open time in ms, close price)`` pairs for the last ``days`` days."""
        try:
            klines = self.klines(BTC_SYMBOL, "1d", days)
        except ExchangeError as exc:
            raise ExchangeError(f"fetching BTC history failed: {exc}", exc.code) from exc
        return self._close_prices(klines)

    def btc_history_prices_for_date(
        self, target_date: datetime, days_before: int
    ) -> list[tuple[float, float]]:
        """Daily ``(open time in ms, close price)`` pairs from ``days_before`` days before
        ``target_date`` up to the day after it."""
        end = target_date + timedelta(days=1)
        start = target_date - timedelta(days=days_before)
        try:
            klines = self.klines_between(BTC_SYMBOL, "1d", start, end)
        except ExchangeError as exc:
            raise ExchangeError(f"fetching BTC history failed: {exc}", exc.code) from exc
        return self._close_prices(klines)

    def btc_price_at(self, target_date: datetime) -> float:
        """Close price of the daily candle opened nearest to ``target_date``, within a day."""
        target = target_date if target_date.tzinfo is not None else target_date.astimezone()
        try:
            klines = self.klines_between(
                BTC_SYMBOL, "1d", target - timedelta(days=1), target + timedelta(days=1)
            )
        except ExchangeError as exc:
            raise ExchangeError(f"fetching BTC price history failed: {exc}", exc.code) from exc
        closest = 0.0
        min_diff = timedelta(days=1)
        for kline in klines:
            opened = datetime.fromtimestamp(kline.open_time // 1000, tz=timezone.utc)
            diff = abs(target - opened)
            if diff < min_diff:
                try:
                    price = parse_price(kline.close)
                except ValueError:
                    continue
                closest = price
                min_diff = diff
        if closest == 0:
            raise ExchangeError(f"no price data near {target:%Y-%m-%d}")
        return closest

    def _account(self) -> dict[str, Any]:
        body = self._request(
            "GET", "/api/v3/account", {"omitZeroBalances": "true"}, signed=True
        )
        if not isinstance(body, dict):
            raise ExchangeError("unexpected account response")
        return body

    def account_balance(self) -> dict[str, Any]:
        """Account information with zero balances left out."""
        try:
            return self._account()
        except ExchangeError as exc:
            raise ExchangeError(f"fetching account balance failed: {exc}", exc.code) from exc

    def btc_balance(self) -> str:
        """Free BTC balance as the exchange reports it; ``"0"`` when there is none."""
        try:
            account = self._account()
        except ExchangeError as exc:
            raise ExchangeError(f"fetching account failed: {exc}", exc.code) from exc
        for balance in account.get("balances") or []:
            if balance.get("asset") == "BTC":
                return str(balance.get("free", "0"))
        return "0"

    def _order(self, symbol: str, params: dict[str, Any]) -> dict[str, Any]:
        try:
            return self._request(
                "POST",
                "/api/v3/order",
                {"symbol": symbol, "side": "BUY", **params},
                signed=True,
            )
        except ExchangeError as exc:
            raise ExchangeError(f"buying {symbol} failed: {exc}", exc.code) from exc

    def buy_market(self, symbol: str, amount: float) -> dict[str, Any]:
        """Buy ``symbol`` at market price for ``amount`` of the quote currency."""
        return self._order(symbol, {"type": "MARKET", "quoteOrderQty": _format_decimal(amount)})

    def buy_best_price(self, symbol: str, amount: float) -> dict[str, Any]:
        """Place a GTC limit buy at the best ask for about ``amount`` of the quote currency."""
        try:
            best_ask, _ = self.best_price(symbol)
        except ExchangeError as exc:
            raise ExchangeError(f"fetching {symbol} order book failed: {exc}", exc.code) from exc
        quantity = _round5(amount / best_ask)
        logger.info("buy quantity: %.5f", quantity)
        return self._order(
            symbol,
            {
                "type": "LIMIT",
                "price": _format_decimal(best_ask),
                "timeInForce": "GTC",
                "quantity": _format_decimal(quantity),
            },
        )

    def best_price(self, symbol: str) -> tuple[float, float]:
        """Best ``(ask, bid)`` prices of ``symbol``."""
        try:
            body = self._request("GET", "/api/v3/ticker/bookTicker", {"symbol": symbol})
        except ExchangeError as exc:
            raise ExchangeError(f"fetching {symbol} order book failed: {exc}", exc.code) from exc
        item = _first(body)
        if not isinstance(item, dict):
            raise ExchangeError(f"fetching {symbol} order book failed: no data")
        try:
            return parse_price(str(item.get("askPrice", ""))), parse_price(
                str(item.get("bidPrice", ""))
            )
        except ValueError as exc:
            raise ExchangeError(f"fetching {symbol} order book failed: {exc}") from exc