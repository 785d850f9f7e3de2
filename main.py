"""
Main entry point for the multi-factor trading signal engine.

This script runs the engine over local data:
- Loads configuration from YAML and SIGNAL_ENGINE_* overrides from .env
- Loads one OHLCV CSV per symbol (symbol = file name without extension)
- Optionally loads sentiment items and fundamental ratios per symbol from JSON
- Analyzes all symbols concurrently and prints the signals as JSON
- Optionally appends the signals to a CSV signal log

Usage:
    python main.py data/AAPL.csv data/MSFT.csv --sentiment sentiment.json --fundamentals fundamentals.json
"""

import argparse
import json
import logging
import os
import sys
from typing import Any, Dict, List

import pandas as pd
from dotenv import load_dotenv

from analyzers.sentiment_analyzer import SentimentItem
from core.batch_analyzer import AnalysisRequest, BatchAnalyzer
from core.config import load_config
from core.exceptions import SignalEngineError
from core.signal_engine import SignalEngine
from data.storage import SignalLogger

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

SENTIMENT_ITEM_KEYS = ('source', 'text', 'score', 'weight', 'mentions', 'confidence')


def setup_logging(level: str = 'INFO', log_dir: str = 'logs'):
    os.makedirs(log_dir, exist_ok=True)
    logging.basicConfig(
        filename=os.path.join(log_dir, 'engine.log'),
        level=logging.INFO,
        format='%(asctime)s %(levelname)s %(name)s %(message)s'
    )
    console = logging.StreamHandler(sys.stderr)
    console.setLevel(getattr(logging, level.upper(), logging.INFO))
    console.setFormatter(logging.Formatter('%(levelname)s %(name)s %(message)s'))
    logging.getLogger().addHandler(console)


def load_price_csv(path: str) -> pd.DataFrame:
    """Read an OHLCV CSV; a 'date' column is parsed when present"""
    df = pd.read_csv(path)
    df.columns = [c.strip().lower() for c in df.columns]
    if 'date' in df.columns:
        df['date'] = pd.to_datetime(df['date'])
    return df


def symbol_from_path(path: str) -> str:
    return os.path.splitext(os.path.basename(path))[0].upper()


def load_json(path: str) -> Dict[str, Any]:
    if not path:
        return {}
    with open(path) as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain an object keyed by symbol")
    return {k.upper(): v for k, v in data.items()}


def sentiment_items(records: List[Dict[str, Any]]) -> List[SentimentItem]:
    return [SentimentItem(**{k: r[k] for k in SENTIMENT_ITEM_KEYS if k in r}) for r in records]


def build_requests(paths: List[str], sentiment: Dict[str, Any], fundamentals: Dict[str, Any]) -> List[AnalysisRequest]:
    requests = []
    for path in paths:
        symbol = symbol_from_path(path)
        records = sentiment.get(symbol)
        requests.append(AnalysisRequest(
            symbol=symbol,
            price_series=load_price_csv(path),
            sentiment=sentiment_items(records) if records is not None else None,
            fundamentals=fundamentals.get(symbol),
        ))
    return requests


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Multi-factor trading signal engine")
    parser.add_argument("prices", nargs="+", help="OHLCV CSV files, one per symbol")
    parser.add_argument("--config", default=None, help="Engine configuration YAML file")
    parser.add_argument("--sentiment", default=None, help="JSON file: {symbol: [sentiment items]}")
    parser.add_argument("--fundamentals", default=None, help="JSON file: {symbol: {pe, pb, dividend_yield, market_cap}}")
    parser.add_argument("--workers", type=int, default=None, help="Maximum concurrent analyses")
    parser.add_argument("--timeout", type=float, default=None, help="Per-symbol timeout in seconds")
    parser.add_argument("--log-signals", default=None, help="Append signals to this CSV file")
    parser.add_argument("--log-level", default="WARNING", help="Console log level")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging(args.log_level)

    try:
        config = load_config(args.config)
        requests = build_requests(args.prices, load_json(args.sentiment), load_json(args.fundamentals))
    except (SignalEngineError, OSError, ValueError) as e:
        logger.critical(f"Startup failed: {e}")
        print(f"error: {e}", file=sys.stderr)
        return 2

    analyzer = BatchAnalyzer(SignalEngine(config), max_workers=args.workers, timeout=args.timeout)
    result = analyzer.run(requests)

    if args.log_signals and result.signals:
        SignalLogger(args.log_signals).log_signals(result.signals.values())

    output = {
        'signals': [signal.to_dict() for signal in result.signals.values()],
        'errors': result.errors,
    }
    print(json.dumps(output, indent=2))
    return 0 if result.signals or not result.errors else 1


if __name__ == "__main__":
    sys.exit(main())
