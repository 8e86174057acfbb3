"""
Tests for the Binance market data and CoinGecko market cap adapters.

Both run against httpx.MockTransport with canned payloads.
"""

import httpx
import pytest

from marketwatch.domain.anomaly.errors import MarketDataUnavailableError
from marketwatch.infrastructure.anomaly.binance_market_data import (
    BinanceMarketDataAdapter,
)
from marketwatch.infrastructure.anomaly.market_cap_adapter import (
    CoinGeckoMarketCapAdapter,
)

TICKERS = [
    {"symbol": "BTCUSDT", "lastPrice": "60000", "priceChangePercent": "1.2", "quoteVolume": "900000000"},
    {"symbol": "PEPEUSDT", "lastPrice": "0.00001", "priceChangePercent": "12.5", "quoteVolume": "300000000"},
    {"symbol": "ETHBTC", "lastPrice": "0.05", "priceChangePercent": "0.1", "quoteVolume": "999999999"},
    {"symbol": "BTCUPUSDT", "lastPrice": "10", "priceChangePercent": "3.0", "quoteVolume": "800000000"},
    {"symbol": "USDCUSDT", "lastPrice": "1", "priceChangePercent": "0.0", "quoteVolume": "700000000"},
    {"symbol": "DOGEUSDT", "lastPrice": "0.1", "priceChangePercent": "2.0", "quoteVolume": "100000000"},
]

KLINE = [1709294400000, "1.0", "1.2", "0.9", "1.1", "5000", 1709294459999, "5500.5", 42, "1", "1", "0"]


def _binance(handler) -> BinanceMarketDataAdapter:
    client = httpx.Client(
        base_url="https://api.binance.test", transport=httpx.MockTransport(handler)
    )
    return BinanceMarketDataAdapter(client=client)


class TestBinanceMarketDataAdapter:
    def test_top_symbols_by_quote_volume(self):
        adapter = _binance(lambda r: httpx.Response(200, json=TICKERS))
        assert adapter.list_top_symbols("USDT", 10) == ["BTCUSDT", "PEPEUSDT", "DOGEUSDT"]
        assert adapter.list_top_symbols("USDT", 2) == ["BTCUSDT", "PEPEUSDT"]

    def test_ticker(self):
        def handler(request):
            assert request.url.params["symbol"] == "PEPEUSDT"
            return httpx.Response(200, json=TICKERS[1])

        ticker = _binance(handler).get_ticker("PEPEUSDT")
        assert ticker.quote_volume == 300_000_000.0
        assert ticker.price_change_percent == 12.5

    def test_candles_use_quote_volume(self):
        def handler(request):
            assert request.url.path == "/api/v3/klines"
            assert request.url.params["interval"] == "1m"
            assert request.url.params["limit"] == "30"
            return httpx.Response(200, json=[KLINE])

        candles = _binance(handler).get_candles("PEPEUSDT", 30)
        assert len(candles) == 1
        assert candles[0].close == 1.1
        assert candles[0].quote_volume == 5500.5
        assert candles[0].open_time.tzinfo is not None

    def test_order_book(self):
        payload = {"bids": [["1.0", "100"]], "asks": [["1.1", "50"], ["1.2", "10"]]}
        bids, asks = _binance(lambda r: httpx.Response(200, json=payload)).get_order_book(
            "PEPEUSDT", 100
        )
        assert bids[0].value == 100.0
        assert len(asks) == 2

    def test_http_error_is_market_data_unavailable(self):
        adapter = _binance(lambda r: httpx.Response(503))
        with pytest.raises(MarketDataUnavailableError) as exc_info:
            adapter.get_candles("PEPEUSDT", 30)
        assert exc_info.value.symbol == "PEPEUSDT"
        assert "503" in exc_info.value.reason

    def test_transport_error_is_market_data_unavailable(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(MarketDataUnavailableError):
            _binance(handler).get_ticker("PEPEUSDT")

    def test_malformed_payload_is_market_data_unavailable(self):
        adapter = _binance(lambda r: httpx.Response(200, json=[["bad"]]))
        with pytest.raises(MarketDataUnavailableError):
            adapter.get_candles("PEPEUSDT", 30)


COINS_PAGE_1 = [
    {"id": "bitcoin", "symbol": "btc", "market_cap": 1_200_000_000_000},
    {"id": "pepe", "symbol": "pepe", "market_cap": 3_000_000_000},
    {"id": "pepe-fork", "symbol": "pepe", "market_cap": 1_000},
    {"id": "nocap", "symbol": "nocap", "market_cap": None},
]


class _CoinGeckoServer:
    def __init__(self, status=200):
        self.status = status
        self.calls = 0

    def __call__(self, request):
        self.calls += 1
        if self.status != 200:
            return httpx.Response(self.status)
        page = request.url.params["page"]
        return httpx.Response(200, json=COINS_PAGE_1 if page == "1" else [])


class _Clock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def _coingecko(server, ttl=600.0, retry=60.0, clock=None):
    client = httpx.Client(
        base_url="https://api.coingecko.test", transport=httpx.MockTransport(server)
    )
    return CoinGeckoMarketCapAdapter(
        ttl_seconds=ttl,
        retry_seconds=retry,
        pages=2,
        client=client,
        clock=clock or _Clock(),
    )


class TestCoinGeckoMarketCapAdapter:
    def test_lookup_by_trading_pair(self):
        adapter = _coingecko(_CoinGeckoServer())
        assert adapter.get_market_cap("BTCUSDT") == 1.2e12
        assert adapter.get_market_cap("pepeusdt") == 3e9

    def test_unknown_symbol(self):
        adapter = _coingecko(_CoinGeckoServer())
        assert adapter.get_market_cap("NOPEUSDT") is None
        assert adapter.get_market_cap("NOCAPUSDT") is None

    def test_table_cached_within_ttl(self):
        server = _CoinGeckoServer()
        adapter = _coingecko(server)
        adapter.get_market_cap("BTCUSDT")
        adapter.get_market_cap("PEPEUSDT")
        assert server.calls == 2  # two pages, one refresh

    def test_stale_table_served_when_refresh_fails(self):
        server = _CoinGeckoServer()
        adapter = _coingecko(server, ttl=0)
        assert adapter.get_market_cap("BTCUSDT") == 1.2e12
        server.status = 500
        assert adapter.get_market_cap("BTCUSDT") == 1.2e12

    def test_first_load_failure_raises(self):
        adapter = _coingecko(_CoinGeckoServer(status=429))
        with pytest.raises(MarketDataUnavailableError):
            adapter.get_market_cap("BTCUSDT")

    def test_failed_refresh_waits_for_cooldown(self):
        server = _CoinGeckoServer()
        clock = _Clock()
        adapter = _coingecko(server, ttl=600.0, retry=60.0, clock=clock)
        adapter.get_market_cap("BTCUSDT")
        assert server.calls == 2

        clock.now += 601
        server.status = 503
        for _ in range(10):
            assert adapter.get_market_cap("BTCUSDT") == 1.2e12
        assert server.calls == 3  # one failed attempt, then cooldown

        clock.now += 61
        server.status = 200
        assert adapter.get_market_cap("PEPEUSDT") == 3e9
        assert server.calls == 5

    def test_failed_first_load_waits_for_cooldown(self):
        server = _CoinGeckoServer(status=503)
        clock = _Clock()
        adapter = _coingecko(server, retry=60.0, clock=clock)
        for _ in range(5):
            with pytest.raises(MarketDataUnavailableError):
                adapter.get_market_cap("BTCUSDT")
        assert server.calls == 1

        clock.now += 61
        server.status = 200
        assert adapter.get_market_cap("BTCUSDT") == 1.2e12
