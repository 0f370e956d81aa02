"""Trend-confirmed trade proposals and delayed approval of manually placed MT5 orders."""

__version__ = "0.1.0"
