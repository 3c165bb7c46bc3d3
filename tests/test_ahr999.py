import json
import re
from datetime import date

import pytest
import responses

from task_scheduler.autobuy.ahr999 import (
    AHR999_API_URL,
    Ahr999Error,
    Ahr999Point,
    Ahr999Source,
    fetch_from_api,
    parse_api_response,
)

T1 = 1709640000
T2 = T1 + 3600
T3 = T1 + 2 * 86400

PAYLOAD = {
    "code": 200,
    "msg": "ok",
    "data": [
        [T1, 0.8, 65000, 0, 0],
        [T2, 0.9, 66000, 0, 0],
        [T3, 0.7, 64000, 0, 0],
        [1, 2],
        ["x", 1, 2, 3, 4],
    ],
}


class CountingFetcher:
    def __init__(self, points):
        self.points = points
        self.calls = 0

    def __call__(self):
        self.calls += 1
        return self.points


def test_point_round_trip():
    point = Ahr999Point("2024-03-05", T1, 0.8, 65000.0)
    assert Ahr999Point.from_dict(point.to_dict()) == point


def test_parse_keeps_earliest_per_day_newest_first():
    points = parse_api_response(PAYLOAD)
    stamps = [p.timestamp for p in points]
    assert stamps == sorted(stamps, reverse=True)
    assert len({p.date for p in points}) == len(points)
    assert set(stamps) <= {T1, T2, T3}
    assert T1 in stamps and T3 in stamps
    first = next(p for p in points if p.timestamp == T1)
    assert first.ahr999 == 0.8
    assert first.btc_price == 65000.0


def test_parse_accepts_json_text():
    assert parse_api_response(json.dumps(PAYLOAD)) == parse_api_response(PAYLOAD)


def test_parse_error_code_raises_with_message():
    with pytest.raises(Ahr999Error, match="quota"):
        parse_api_response({"code": 500, "msg": "quota", "data": []})


def test_parse_bad_json_raises():
    with pytest.raises(Ahr999Error):
        parse_api_response("not json")


def test_fetch_from_api():
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, re.compile(re.escape(AHR999_API_URL.split("?")[0]) + ".*"), json=PAYLOAD)
        points = fetch_from_api()
    assert T1 in [p.timestamp for p in points]


def test_fetch_bad_status_raises():
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, re.compile(re.escape(AHR999_API_URL.split("?")[0]) + ".*"), status=500)
        with pytest.raises(Ahr999Error):
            fetch_from_api()


def test_update_skips_old_months_and_orders_lines(tmp_path):
    source = Ahr999Source(tmp_path)
    points = [
        Ahr999Point("2024-03-01", 100, 1.0, 10.0),
        Ahr999Point("2024-03-02", 200, 1.1, 11.0),
        Ahr999Point("2023-12-31", 50, 0.5, 5.0),
    ]
    written = source.update(points)
    assert [p.name for p in written] == ["2024-03.json"]
    assert not (tmp_path / "2023-12.json").exists()
    lines = (tmp_path / "2024-03.json").read_text(encoding="utf-8").splitlines()
    assert [json.loads(line) for line in lines] == [points[1].to_dict(), points[0].to_dict()]


def test_update_keeps_earliest_of_a_day(tmp_path):
    source = Ahr999Source(tmp_path)
    source.update([Ahr999Point("2024-03-01", 100, 1.0, 10.0)])
    source.update([Ahr999Point("2024-03-01", 200, 2.0, 20.0)])
    assert source.lookup("2024-03-01").timestamp == 100
    source.update([Ahr999Point("2024-03-01", 50, 3.0, 30.0)])
    assert source.lookup("2024-03-01").ahr999 == 3.0


def test_lookup_missing_returns_none(tmp_path):
    source = Ahr999Source(tmp_path)
    assert source.lookup("2024-05-01") is None


def test_at_uses_cache_without_fetching(tmp_path):
    fetcher = CountingFetcher([])
    source = Ahr999Source(tmp_path, fetcher)
    source.update([Ahr999Point("2024-03-05", 100, 0.7, 64000.0)])
    assert source.at(date(2024, 3, 5)) == (64000.0, 0.7)
    assert fetcher.calls == 0


def test_at_fetches_on_miss(tmp_path):
    fetcher = CountingFetcher([Ahr999Point("2024-03-05", 100, 0.7, 64000.0)])
    source = Ahr999Source(tmp_path, fetcher)
    assert source.at(date(2024, 3, 5)) == (64000.0, 0.7)
    assert fetcher.calls == 1
    assert source.lookup("2024-03-05") is not None


def test_at_raises_when_still_missing(tmp_path):
    source = Ahr999Source(tmp_path, CountingFetcher([]))
    with pytest.raises(Ahr999Error, match="2024-03-05"):
        source.at(date(2024, 3, 5))


def test_current_reads_today(tmp_path):
    today = date.today().strftime("%Y-%m-%d")
    fetcher = CountingFetcher([Ahr999Point(today, 100, 0.9, 70000.0)])
    source = Ahr999Source(tmp_path, fetcher)
    assert source.current() == (70000.0, 0.9)