from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlparse

import pytest
import requests
import responses

from task_scheduler.exchange import (
    BinanceClient,
    ExchangeError,
    Kline,
    SymbolPrice,
    parse_price,
)

BASE = "https://api.binance.com"


@pytest.fixture
def mocked():
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        yield rsps


def _client(**kwargs):
    return BinanceClient(
        api_key="placeholder",
        secret_key="secret",
        proxy_url="http://localhost:8080",
        session=requests.Session(),
        **kwargs,
    )


def _query(call):
    return {k: v[0] for k, v in parse_qs(urlparse(call.request.url).query).items()}


def _row(open_ms, close):
    return [open_ms, "1", "2", "0.5", close, "10", open_ms + 1, "100", 5, "3", "30", "0"]


def test_parse_price_reads_leading_number():
    assert parse_price("123.45") == 123.45
    assert parse_price("  42") == 42.0


def test_parse_price_rejects_text():
    with pytest.raises(ValueError):
        parse_price("abc")


def test_ping_ok_and_failure(mocked):
    mocked.add(responses.GET, BASE + "/api/v3/ping", json={})
    client = _client()
    assert client.ping() is None
    mocked.replace(
        responses.GET, BASE + "/api/v3/ping", json={"code": -1003, "msg": "too many"}, status=429
    )
    with pytest.raises(ExchangeError) as info:
        client.ping()
    assert info.value.code == -1003


def test_latest_price_accepts_object_and_list(mocked):
    mocked.add(
        responses.GET,
        BASE + "/api/v3/ticker/price",
        json={"symbol": "BTCUSDT", "price": "65000.50"},
    )
    client = _client()
    assert client.latest_price("BTCUSDT") == SymbolPrice("BTCUSDT", "65000.50")
    assert client.btc_price() == 65000.5
    assert _query(mocked.calls[0])["symbol"] == "BTCUSDT"


def test_eth_price_from_list_and_empty_list_fails(mocked):
    mocked.add(
        responses.GET,
        BASE + "/api/v3/ticker/price",
        json=[{"symbol": "ETHUSDT", "price": "3200.25"}],
    )
    client = _client()
    assert client.eth_price() == 3200.25
    mocked.replace(responses.GET, BASE + "/api/v3/ticker/price", json=[])
    with pytest.raises(ExchangeError):
        client.eth_price()


def test_unparsable_price_raises(mocked):
    mocked.add(
        responses.GET, BASE + "/api/v3/ticker/price", json={"symbol": "BTCUSDT", "price": "n/a"}
    )
    with pytest.raises(ExchangeError):
        _client().btc_price()


def test_server_time(mocked):
    mocked.add(responses.GET, BASE + "/api/v3/time", json={"serverTime": 1700000000123})
    result = _client().server_time()
    expected = datetime.fromtimestamp(1700000000, tz=timezone.utc) + timedelta(milliseconds=123)
    assert result == expected


def test_health_check_reports_failing_step(mocked):
    mocked.add(responses.GET, BASE + "/api/v3/ping", json={})
    mocked.add(responses.GET, BASE + "/api/v3/time", json={"code": -1, "msg": "down"}, status=500)
    with pytest.raises(ExchangeError) as info:
        _client().health_check()
    assert "server time" in str(info.value)


def test_klines_and_history_prices(mocked):
    mocked.add(
        responses.GET,
        BASE + "/api/v3/klines",
        json=[_row(1000, "10.5"), _row(2000, "bad"), _row(3000, "12")],
    )
    client = _client()
    klines = client.klines("BTCUSDT", "1d", 3)
    assert [k.open_time for k in klines] == [1000, 2000, 3000]
    assert isinstance(klines[0], Kline) and klines[0].close == "10.5"
    query = _query(mocked.calls[0])
    assert query["interval"] == "1d" and query["limit"] == "3"
    prices = client.btc_history_prices(3)
    assert prices == [(1000.0, 10.5), (3000.0, 12.0)]


def test_btc_price_at_picks_nearest_day(mocked):
    target = datetime(2024, 1, 2, tzinfo=timezone.utc)
    day = timedelta(days=1)
    rows = [
        _row(int((target - day).timestamp()) * 1000, "1"),
        _row(int(target.timestamp()) * 1000, "2"),
        _row(int((target + day).timestamp()) * 1000, "3"),
    ]
    mocked.add(responses.GET, BASE + "/api/v3/klines", json=rows)
    assert _client().btc_price_at(target) == 2.0
    query = _query(mocked.calls[0])
    assert int(query["startTime"]) < int(query["endTime"])


def test_btc_price_at_without_data_raises(mocked):
    mocked.add(responses.GET, BASE + "/api/v3/klines", json=[])
    with pytest.raises(ExchangeError):
        _client().btc_price_at(datetime(2024, 1, 2, tzinfo=timezone.utc))


def test_history_for_date_range_spans_requested_days(mocked):
    mocked.add(responses.GET, BASE + "/api/v3/klines", json=[_row(5000, "7")])
    target = datetime(2024, 3, 10, tzinfo=timezone.utc)
    prices = _client().btc_history_prices_for_date(target, 5)
    assert prices == [(5000.0, 7.0)]
    query = _query(mocked.calls[0])
    span = int(query["endTime"]) - int(query["startTime"])
    assert span == int(timedelta(days=6).total_seconds() * 1000)


def test_signed_account_requests(mocked):
    mocked.add(
        responses.GET,
        BASE + "/api/v3/account",
        json={"balances": [{"asset": "USDT", "free": "5"}, {"asset": "BTC", "free": "0.01"}]},
    )
    client = _client()
    assert client.btc_balance() == "0.01"
    assert client.account_balance()["balances"][0]["asset"] == "USDT"
    call = mocked.calls[0]
    assert call.request.headers["X-MBX-APIKEY"] == "placeholder"
    query = _query(call)
    assert len(query["signature"]) == 64
    assert "timestamp" in query


def test_btc_balance_defaults_to_zero(mocked):
    mocked.add(responses.GET, BASE + "/api/v3/account", json={"balances": []})
    assert _client().btc_balance() == "0"


def test_signed_request_requires_keys():
    client = BinanceClient(session=requests.Session(), proxy_url="http://localhost:8080")
    with pytest.raises(ExchangeError):
        client.account_balance()


def test_buy_market_sends_quote_amount(mocked):
    mocked.add(responses.POST, BASE + "/api/v3/order", json={"orderId": 7})
    order = _client().buy_market("BTCUSDT", 12.5)
    assert order == {"orderId": 7}
    query = _query(mocked.calls[0])
    assert query["quoteOrderQty"] == "12.5"
    assert query["type"] == "MARKET"


def test_buy_best_price_places_limit_order(mocked):
    mocked.add(
        responses.GET,
        BASE + "/api/v3/ticker/bookTicker",
        json=[{"symbol": "BTCUSDT", "askPrice": "65000.5", "bidPrice": "64999.5"}],
    )
    mocked.add(responses.POST, BASE + "/api/v3/order", json={"orderId": 9})
    client = _client()
    assert client.best_price("BTCUSDT") == (65000.5, 64999.5)
    assert client.buy_best_price("BTCUSDT", 100) == {"orderId": 9}
    query = _query(mocked.calls[-1])
    assert query["price"] == "65000.5"
    assert query["quantity"] == "0.00154"
    assert query["type"] == "LIMIT"


def test_order_rejection_raises(mocked):
    mocked.add(
        responses.POST, BASE + "/api/v3/order", json={"code": -2010, "msg": "insufficient"}, status=400
    )
    with pytest.raises(ExchangeError) as info:
        _client().buy_market("BTCUSDT", 12.5)
    assert "insufficient" in str(info.value)