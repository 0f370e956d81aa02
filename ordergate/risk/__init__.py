"""Risk sizing."""

from ordergate.risk.sizing import BracketPrices, PositionSizer, bracket_prices

__all__ = ["BracketPrices", "PositionSizer", "bracket_prices"]
