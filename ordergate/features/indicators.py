"""Technical indicator calculations."""

from __future__ import annotations

import pandas as pd


def calculate_ema(series: pd.Series, period: int) -> pd.Series:
    """Exponential moving average seeded with the simple mean of the first ``period`` points.

    Points before the seed are NaN. Leading NaNs in ``series`` are skipped, so the
    function can be chained (e.g. the MACD signal line over the MACD line).
    """
    result = pd.Series(float("nan"), index=series.index, dtype=float)
    values = series.dropna().astype(float)
    if period <= 0 or len(values) < period:
        return result
    seed = values.iloc[:period].mean()
    seeded = pd.concat(
        [pd.Series([seed], index=values.index[period - 1 : period]), values.iloc[period:]]
    )
    # adjust=False with span=period gives ema = (x - prev) * 2/(period+1) + prev
    ema = seeded.ewm(span=period, adjust=False).mean()
    result.loc[ema.index] = ema
    return result


def calculate_macd(
    close: pd.Series,
    fast_period: int,
    slow_period: int,
    signal_period: int,
) -> pd.DataFrame:
    """MACD line, signal line and histogram, NaN wherever an input EMA is undefined."""
    fast = calculate_ema(close, fast_period)
    slow = calculate_ema(close, slow_period)
    macd = fast - slow
    signal = calculate_ema(macd, signal_period)
    return pd.DataFrame(
        {
            "macd": macd,
            "signal": signal,
            "histogram": macd - signal,
        },
        index=close.index,
    )


def calculate_volume_sma(volume: pd.Series, period: int) -> pd.Series:
    """Simple moving average of volume.

    Args:
        volume: Volume series
        period: Lookback period for SMA

    Returns:
        Series with volume SMA values
    """
    return volume.rolling(window=period, min_periods=period).mean()
