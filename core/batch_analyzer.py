"""
Batch Analyzer

Runs signal analysis for many symbols on a bounded thread pool. A failing or
slow symbol never aborts the others: its error is logged and collected in the
result's errors map. Failed symbols are not retried.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional, Sequence

from core.config import EngineConfig
from core.exceptions import InvalidInputError, SignalEngineError
from core.market_data import PriceSeries
from core.models import Signal
from core.signal_engine import FundamentalsInput, SentimentInput, SignalEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnalysisRequest:
    """Inputs for one symbol"""
    symbol: str
    price_series: PriceSeries
    sentiment: SentimentInput = None
    fundamentals: FundamentalsInput = None
    as_of: Optional[datetime] = None


@dataclass
class BatchResult:
    signals: Dict[str, Signal] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def success_rate(self) -> float:
        total = len(self.signals) + len(self.errors)
        return len(self.signals) / total if total else 0.0


class BatchAnalyzer:
    """
    Concurrent multi-symbol analysis

    Each symbol waits at most `timeout` seconds for its result once collection
    reaches it; a symbol that overruns is reported as a timeout and its worker
    is left to finish in the background.
    """

    def __init__(self, engine: SignalEngine = None, config: EngineConfig = None,
                 max_workers: Optional[int] = None, timeout: Optional[float] = None):
        self.engine = engine or SignalEngine(config)
        self.max_workers = max_workers if max_workers is not None else self.engine.config.max_workers
        self.timeout = timeout if timeout is not None else self.engine.config.symbol_timeout
        if self.max_workers < 1:
            raise InvalidInputError(f"max_workers must be at least 1, got {self.max_workers}")

    def run(self, requests: Sequence[AnalysisRequest]) -> BatchResult:
        symbols = [r.symbol for r in requests]
        duplicates = sorted({s for s in symbols if symbols.count(s) > 1})
        if duplicates:
            raise InvalidInputError(f"Duplicate symbols in batch: {duplicates}")

        result = BatchResult()
        if not requests:
            return result

        logger.info(f"Analyzing {len(requests)} symbols with {self.max_workers} workers")
        executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix='signal')
        try:
            futures = {
                request.symbol: executor.submit(self._analyze, request)
                for request in requests
            }
            for symbol, future in futures.items():
                try:
                    result.signals[symbol] = future.result(timeout=self.timeout)
                except FutureTimeoutError:
                    future.cancel()
                    result.errors[symbol] = f"Analysis timed out after {self.timeout}s"
                    logger.error(f"{symbol}: analysis timed out after {self.timeout}s")
                except SignalEngineError as e:
                    result.errors[symbol] = str(e)
                    logger.warning(f"{symbol}: {type(e).__name__}: {e}")
                except Exception as e:
                    result.errors[symbol] = f"{type(e).__name__}: {e}"
                    logger.exception(f"{symbol}: unexpected error during analysis")
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        logger.info(f"Batch complete: {len(result.signals)} signals, {len(result.errors)} errors")
        return result

    def _analyze(self, request: AnalysisRequest) -> Signal:
        return self.engine.analyze(
            request.price_series,
            sentiment=request.sentiment,
            fundamentals=request.fundamentals,
            symbol=request.symbol,
            as_of=request.as_of,
        )


def analyze_batch(requests: Sequence[AnalysisRequest], max_workers: Optional[int] = None,
                  timeout: Optional[float] = None, config: EngineConfig = None) -> BatchResult:
    """Analyze several symbols concurrently; see BatchAnalyzer"""
    return BatchAnalyzer(config=config, max_workers=max_workers, timeout=timeout).run(requests)
