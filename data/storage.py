"""
Signal Logging Module

This module provides:
- Persistent logging of every generated signal (action, confidence, targets, factor scores) to CSV
- Methods to load the signal history and fetch the latest signal per symbol
- Simple analytics over the history (action distribution, average confidence)

Signals are stored in CSV for easy inspection; the engine itself never touches disk.
"""

import os

import pandas as pd

from core.models import Signal


class SignalLogger:
    def __init__(self, log_file='signal_log.csv'):
        self.log_file = log_file
        self.columns = [
            'timestamp', 'symbol', 'action', 'confidence', 'target_price', 'stop_loss', 'ai_score',
            'technical_score', 'sentiment_score', 'fundamental_score', 'volume_score', 'combined_score',
            'reasoning'
        ]
        directory = os.path.dirname(self.log_file)
        if directory:
            os.makedirs(directory, exist_ok=True)
        if not os.path.exists(self.log_file):
            pd.DataFrame(columns=self.columns).to_csv(self.log_file, index=False)

    def log_signal(self, signal: Signal):
        breakdown = signal.breakdown
        row = {
            'timestamp': signal.timestamp.isoformat() if signal.timestamp else '',
            'symbol': signal.symbol,
            'action': signal.action.value,
            'confidence': signal.confidence,
            'target_price': signal.target_price,
            'stop_loss': signal.stop_loss,
            'ai_score': signal.ai_score,
            'technical_score': breakdown.technical.score,
            'sentiment_score': breakdown.sentiment.score,
            'fundamental_score': breakdown.fundamental.score,
            'volume_score': breakdown.volume.score,
            'combined_score': breakdown.combined_score,
            'reasoning': signal.reasoning
        }
        df = pd.DataFrame([row], columns=self.columns)
        df.to_csv(self.log_file, mode='a', header=False, index=False)

    def log_signals(self, signals):
        for signal in signals:
            self.log_signal(signal)

    def load_signals(self):
        return pd.read_csv(self.log_file)

    def latest(self, symbol):
        """Most recently logged signal row for a symbol, or None"""
        df = self.load_signals()
        rows = df[df['symbol'] == symbol]
        if rows.empty:
            return None
        return rows.iloc[-1].to_dict()

    def analyze_signals(self):
        df = self.load_signals()
        if df.empty:
            return {}
        return {
            'total_signals': len(df),
            'symbols': int(df['symbol'].nunique()),
            'action_counts': {k: int(v) for k, v in df['action'].value_counts().items()},
            'avg_confidence': float(df['confidence'].mean()),
            'avg_ai_score': float(df['ai_score'].mean())
        }
