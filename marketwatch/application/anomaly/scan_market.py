"""
Use case: Market watcher cycle.

Input: none (the universe comes from WatcherSettings)
Output: ScanCycleResult with per-cycle counters
Side effects: inserts PENDING analysis jobs.

Per symbol: fetch candles, ticker and market cap, build a snapshot,
run Layer 1, and for candidates fetch the order book. Candidates without
a recent job are enqueued. This use case never calls the qualitative
analysis service, so a cycle costs only market data latency.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from marketwatch.application.anomaly.dtos import ScanCycleResult
from marketwatch.domain.anomaly.entities import (
    AnalysisJob,
    OrderBookSnapshot,
    SocialSnapshot,
    SymbolSnapshot,
)
from marketwatch.domain.anomaly.errors import MarketDataUnavailableError
from marketwatch.domain.anomaly.features import build_snapshot
from marketwatch.domain.anomaly.mechanical_filter import FilterResult, MechanicalFilter
from marketwatch.domain.anomaly.ports import JobStore, MarketCapPort, MarketDataPort

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WatcherSettings:
    """Tunables of the market watcher."""

    tracked_symbols: tuple[str, ...] = ()
    tracked_symbol_count: int = 50
    quote_asset: str = "USDT"
    fetch_concurrency: int = 4
    dedup_window: timedelta = timedelta(minutes=15)
    candle_limit: int = 30
    average_volume_period: int = 20
    rsi_window: int = 14
    orderbook_band: float = 0.02
    orderbook_depth_limit: int = 100
    orderbook_thin_ratio: float = 0.33


@dataclass
class _SymbolScan:
    symbol: str
    snapshot: Optional[SymbolSnapshot] = None
    filter_result: Optional[FilterResult] = None
    error: Optional[str] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ScanMarketUseCase:
    """Runs one market watcher cycle over the tracked universe."""

    def __init__(
        self,
        market_data: MarketDataPort,
        market_caps: MarketCapPort,
        job_store: JobStore,
        mechanical_filter: MechanicalFilter | None = None,
        config: WatcherSettings | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._market_data = market_data
        self._market_caps = market_caps
        self._store = job_store
        self._filter = mechanical_filter or MechanicalFilter()
        self._config = config or WatcherSettings()
        self._clock = clock

    def run_cycle(self) -> ScanCycleResult:
        """Scan every tracked symbol once and enqueue new candidates."""
        started_at = self._clock()
        try:
            universe = self._resolve_universe()
        except MarketDataUnavailableError as exc:
            logger.error("Scan cycle aborted, universe unavailable: %s", exc.message)
            return ScanCycleResult(
                started_at=started_at, finished_at=self._clock(), error=exc.message
            )

        workers = max(1, min(self._config.fetch_concurrency, len(universe) or 1))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="scan") as pool:
            scans = list(pool.map(self._scan_symbol, universe))

        scanned = failures = candidates = enqueued = duplicates = 0
        job_ids = []
        for scan in scans:
            if scan.error is not None:
                failures += 1
                continue
            scanned += 1
            if scan.filter_result is None or not scan.filter_result.passed:
                continue
            candidates += 1

            try:
                recent = self._store.find_recent_job(
                    scan.symbol, self._config.dedup_window
                )
                job = None
                if recent is None:
                    job = self._store.insert_pending(
                        self._job_from_snapshot(scan.snapshot)
                    )
            except Exception:
                failures += 1
                logger.exception("Failed to enqueue %s", scan.symbol)
                continue

            if recent is not None:
                duplicates += 1
                logger.info(
                    "Skip %s: job %s (%s) is still recent",
                    scan.symbol,
                    recent.id,
                    recent.status.value,
                )
                continue

            enqueued += 1
            job_ids.append(job.id)
            logger.info(
                "Enqueued %s job %s: %s",
                scan.symbol,
                job.id,
                "; ".join(scan.filter_result.reasons),
            )

        result = ScanCycleResult(
            started_at=started_at,
            finished_at=self._clock(),
            scanned=scanned,
            candidates=candidates,
            enqueued=enqueued,
            duplicates=duplicates,
            failures=failures,
            enqueued_job_ids=job_ids,
        )
        logger.info(
            "Scan cycle: %d scanned, %d candidates, %d enqueued, %d duplicates, %d failures (%.1fs)",
            result.scanned,
            result.candidates,
            result.enqueued,
            result.duplicates,
            result.failures,
            result.duration_seconds,
        )
        return result

    def _resolve_universe(self) -> list[str]:
        if self._config.tracked_symbols:
            return [s.upper() for s in self._config.tracked_symbols]
        return self._market_data.list_top_symbols(
            self._config.quote_asset, self._config.tracked_symbol_count
        )

    def _scan_symbol(self, symbol: str) -> _SymbolScan:
        cfg = self._config
        try:
            candles = self._market_data.get_candles(symbol, cfg.candle_limit)
            ticker = self._market_data.get_ticker(symbol)
            market_cap = self._market_caps.get_market_cap(symbol)
            snapshot = build_snapshot(
                symbol,
                candles,
                [],
                [],
                ticker,
                market_cap,
                average_period=cfg.average_volume_period,
                rsi_window=cfg.rsi_window,
                band=cfg.orderbook_band,
                captured_at=self._clock(),
            )
            verdict = self._filter.evaluate(snapshot)
            if verdict.passed:
                bids, asks = self._market_data.get_order_book(
                    symbol, cfg.orderbook_depth_limit
                )
                snapshot = build_snapshot(
                    symbol,
                    candles,
                    bids,
                    asks,
                    ticker,
                    market_cap,
                    average_period=cfg.average_volume_period,
                    rsi_window=cfg.rsi_window,
                    band=cfg.orderbook_band,
                    captured_at=snapshot.captured_at,
                )
        except MarketDataUnavailableError as exc:
            logger.warning("Skip %s: %s", symbol, exc.message)
            return _SymbolScan(symbol=symbol, error=exc.message)
        except Exception as exc:
            logger.exception("Unexpected error scanning %s", symbol)
            return _SymbolScan(symbol=symbol, error=str(exc))

        logger.debug("%s layer 1: %s", symbol, "; ".join(verdict.reasons))
        return _SymbolScan(symbol=symbol, snapshot=snapshot, filter_result=verdict)

    def _job_from_snapshot(self, snapshot: SymbolSnapshot) -> AnalysisJob:
        orderbook_json = None
        if snapshot.total_bid_value is not None and snapshot.total_ask_value is not None:
            ratio = snapshot.orderbook_ratio
            orderbook_json = OrderBookSnapshot(
                total_bids_usd=snapshot.total_bid_value,
                total_asks_usd=snapshot.total_ask_value,
                is_thin=ratio is not None and ratio < self._config.orderbook_thin_ratio,
            ).to_json()

        return AnalysisJob(
            symbol=snapshot.symbol,
            price_at_detection=snapshot.last_price,
            price_change=snapshot.price_change_5m,
            price_change_1m=snapshot.price_change_1m,
            volume_multiplier=snapshot.volume_multiplier,
            rsi=snapshot.rsi,
            market_cap=snapshot.market_cap,
            volume_to_market_cap=snapshot.volume_to_market_cap,
            orderbook_json=orderbook_json,
            social_json=SocialSnapshot().to_json(),
        )
