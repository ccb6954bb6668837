"""
Indicator implementations exposed to formula programs.

Every function takes pandas Series (plus integer/float parameters) and
returns a pandas Series aligned with its first input. Boolean indicators
(CROSS, EVERY, EXIST, BETWEEN, LAST, LONGCROSS, FILTER) return bool
Series. Multi-line indicators return a tuple of Series.

Moving averages:   MA, EMA, SMA (China-style), WMA, DMA
Window statistics: SUM, STD, AVEDEV, HHV, LLV, HHVBARS, LLVBARS, COUNT,
                   EVERY, EXIST, SLOPE, FORCAST
Series tools:      ABS, MAX, MIN, REF, DIFF, IF, CROSS, RET, RD
Math:              LN, POW, SQRT, SIN, COS, TAN
Conditions:        BARSLAST, BARSSINCEN, VALUEWHEN, BETWEEN, LAST,
                   LONGCROSS, FILTER, TOPRANGE, LOWRANGE
Indicators:        RSI, MACD, BOLL, ATR, KDJ, WR, BIAS, PSY, CCI, BBI, DMI,
                   TAQ, KTN, TRIX, VR, CR, EMV, DPO, BRAR, DFMA, MTM, MASS,
                   ROC, EXPMA, OBV, MFI, ASI, LON, QRR
Price limits:      ZTPRICE, DTPRICE
"""

from __future__ import annotations

import numpy as np
import pandas as pd

__all__ = [
    "abs_",
    "max_",
    "min_",
    "ref",
    "diff",
    "std",
    "sum_",
    "ma",
    "ema",
    "sma",
    "wma",
    "hhv",
    "llv",
    "avedev",
    "count",
    "every",
    "exist",
    "cross",
    "if_",
    "rsi",
    "macd",
    "macd_signal",
    "macd_hist",
    "boll",
    "bollupper",
    "bolllower",
    "atr",
    "ztprice",
    "dtprice",
    "ln",
    "pow_",
    "sqrt",
    "sin",
    "cos",
    "tan",
    "rd",
    "ret",
    "dma",
    "slope",
    "forcast",
    "barslast",
    "barssincen",
    "valuewhen",
    "between",
    "last",
    "longcross",
    "filter_",
    "hhvbars",
    "llvbars",
    "toprange",
    "lowrange",
    "kdj",
    "wr",
    "bias",
    "psy",
    "cci",
    "bbi",
    "dmi",
    "taq",
    "ktn",
    "trix",
    "vr",
    "cr",
    "emv",
    "dpo",
    "brar",
    "dfma",
    "mtm",
    "mass",
    "roc",
    "expma",
    "obv",
    "mfi",
    "asi",
    "lon",
    "qrr",
]


# ------------------ series tools ------------------

def abs_(series: pd.Series) -> pd.Series:
    return series.abs()


def max_(left: pd.Series, right: pd.Series) -> pd.Series:
    """Element-wise maximum; positions past the end of `right` keep `left`."""
    right = right.reindex(left.index)
    return left.where(right.isna() | (left >= right), right)


def min_(left: pd.Series, right: pd.Series) -> pd.Series:
    right = right.reindex(left.index)
    return left.where(right.isna() | (left <= right), right)


def ref(series: pd.Series, n: int) -> pd.Series:
    """Shift the series back by `n` bars (REF(C, 1) is yesterday's close)."""
    if n <= 0:
        return series.copy()
    return series.shift(n)


def diff(series: pd.Series, n: int = 1) -> pd.Series:
    return series.diff(max(n, 1))


def if_(cond: pd.Series, a: pd.Series, b: pd.Series) -> pd.Series:
    """Pick `a` where `cond` holds, else `b`."""
    a = a.reindex(cond.index)
    b = b.reindex(cond.index)
    return pd.Series(np.where(cond.to_numpy(dtype=bool), a, b), index=cond.index, dtype=float)


def cross(left: pd.Series, right: pd.Series) -> pd.Series:
    """True on the bar where `left` moves from not-above to above `right`."""
    right = right.reindex(left.index)
    was_above = (left.shift(1) > right.shift(1)).to_numpy()
    crossed = (left > right).to_numpy() & ~was_above
    if len(crossed):
        crossed[0] = False
    return pd.Series(crossed, index=left.index)


# ------------------ window statistics ------------------

def sum_(series: pd.Series, n: int) -> pd.Series:
    """Rolling N-bar sum; N = 0 gives the running total."""
    if n <= 0:
        return series.fillna(0).cumsum()
    return series.fillna(0).rolling(window=n, min_periods=n).sum()


def std(series: pd.Series, n: int) -> pd.Series:
    """Population standard deviation over N bars."""
    return series.rolling(window=n, min_periods=n).std(ddof=0)


def avedev(series: pd.Series, n: int) -> pd.Series:
    """Mean absolute deviation over N bars."""
    return series.rolling(window=n, min_periods=n).apply(
        lambda w: np.mean(np.abs(w - np.mean(w))), raw=True
    )


def hhv(series: pd.Series, n: int) -> pd.Series:
    return series.rolling(window=n, min_periods=n).max()


def llv(series: pd.Series, n: int) -> pd.Series:
    return series.rolling(window=n, min_periods=n).min()


def count(cond: pd.Series, n: int) -> pd.Series:
    """Number of bars in the last N where `cond` holds."""
    return cond.astype(float).rolling(window=n, min_periods=n).sum()


def every(cond: pd.Series, n: int) -> pd.Series:
    return (count(cond, n) == n).fillna(False).astype(bool)


def exist(cond: pd.Series, n: int) -> pd.Series:
    return (count(cond, n) > 0).fillna(False).astype(bool)


# ------------------ moving averages ------------------

def ma(series: pd.Series, n: int) -> pd.Series:
    """
    Simple moving average.

    The first (n-1) values are NaN.
    """
    return series.rolling(window=n, min_periods=n).mean()


def ema(series: pd.Series, n: int) -> pd.Series:
    """
    Exponential moving average, alpha = 2 / (n + 1).

    Seeded with the first value (adjust=False), as charting packages do.
    """
    if n <= 0:
        return series.copy()
    return series.ewm(span=n, adjust=False).mean()


def sma(series: pd.Series, n: int, m: float = 1.0) -> pd.Series:
    """
    China-style SMA: Y = (M * X + (N - M) * Y') / N.

    Equivalent to an exponential average with alpha = M / N.
    """
    if n <= 0:
        return series.copy()
    return series.ewm(alpha=m / n, adjust=False).mean()


def wma(series: pd.Series, n: int) -> pd.Series:
    """Linearly weighted moving average, newest bar weighted N."""
    weights = np.arange(1, n + 1, dtype=float)
    return series.rolling(window=n, min_periods=n).apply(
        lambda w: np.dot(w, weights) / weights.sum(), raw=True
    )


# ------------------ technical indicators ------------------

def rsi(series: pd.Series, n: int = 14) -> pd.Series:
    """
    Relative Strength Index.

    Parameters
    ----------
    series : pd.Series
        Input price series (typically CLOSE).
    n : int, default 14
        Smoothing length.

    Returns
    -------
    pd.Series
        RSI in [0, 100], rounded to 2 decimals. The first value is NaN.
    """
    delta = series - series.shift(1)
    gain = sma(delta.clip(lower=0), n, 1)
    total = sma(delta.abs(), n, 1)
    return (gain / total.replace(0, np.nan) * 100).round(2)


def macd(series: pd.Series, fast: int = 12, slow: int = 26, signal: int = 9) -> tuple[pd.Series, pd.Series, pd.Series]:
    """
    Moving Average Convergence Divergence.

    Returns
    -------
    (dif, dea, hist) : tuple of pd.Series
        dif = EMA(fast) - EMA(slow)
        dea = EMA(dif, signal)
        hist = (dif - dea) * 2
    """
    dif = ema(series, fast) - ema(series, slow)
    dea = ema(dif, signal)
    return dif, dea, (dif - dea) * 2


def macd_signal(series: pd.Series, fast: int = 12, slow: int = 26, signal: int = 9) -> pd.Series:
    _dif, dea, _hist = macd(series, fast=fast, slow=slow, signal=signal)
    return dea


def macd_hist(series: pd.Series, fast: int = 12, slow: int = 26, signal: int = 9) -> pd.Series:
    _dif, _dea, hist = macd(series, fast=fast, slow=slow, signal=signal)
    return hist


def boll(series: pd.Series, n: int = 20, p: float = 2.0) -> tuple[pd.Series, pd.Series, pd.Series]:
    """
    Bollinger Bands.

    Returns
    -------
    (upper, mid, lower) : tuple of pd.Series
        mid = MA(n), upper/lower = mid +/- p * STD(n)
    """
    mid = ma(series, n)
    width = std(series, n) * p
    return mid + width, mid, mid - width


def bollupper(series: pd.Series, n: int = 20, p: float = 2.0) -> pd.Series:
    upper, _mid, _lower = boll(series, n, p)
    return upper


def bolllower(series: pd.Series, n: int = 20, p: float = 2.0) -> pd.Series:
    _upper, _mid, lower = boll(series, n, p)
    return lower


def atr(close: pd.Series, high: pd.Series, low: pd.Series, n: int = 20) -> pd.Series:
    """Average true range over N bars."""
    prev_close = ref(close, 1)
    true_range = pd.concat(
        [high - low, (prev_close - high).abs(), (prev_close - low).abs()], axis=1
    ).max(axis=1)
    return ma(true_range, n)


def ztprice(series: pd.Series, n: float = 0.1) -> pd.Series:
    """Limit-up price for a daily limit of `n` (0.1 = 10%)."""
    return series * (1 + n)


def dtprice(series: pd.Series, n: float = 0.1) -> pd.Series:
    """Limit-down price for a daily limit of `n`."""
    return series * (1 - n)


def _div(num: pd.Series, den: pd.Series) -> pd.Series:
    """Element-wise division; zero denominators give NaN rather than inf."""
    return (num / den).replace([np.inf, -np.inf], np.nan)


# ------------------ math helpers ------------------

def ln(series: pd.Series) -> pd.Series:
    """Natural log; non-positive values give NaN."""
    return np.log(series.where(series > 0))


def pow_(series: pd.Series, n: float) -> pd.Series:
    return series ** n


def sqrt(series: pd.Series) -> pd.Series:
    return np.sqrt(series.where(series >= 0))


def sin(series: pd.Series) -> pd.Series:
    return np.sin(series)


def cos(series: pd.Series) -> pd.Series:
    return np.cos(series)


def tan(series: pd.Series) -> pd.Series:
    return np.tan(series)


def rd(series: pd.Series, d: int = 3) -> pd.Series:
    """Round to `d` decimals."""
    return series.round(d)


def ret(series: pd.Series, n: int = 1) -> float:
    """The n-th value from the end (RET(S) is the last value)."""
    n = max(n, 1)
    if n > len(series):
        return np.nan
    return float(series.iloc[-n])


# ------------------ smoothing and regression ------------------

def dma(series: pd.Series, a: float) -> pd.Series:
    """
    Dynamic moving average: Y = A * X + (1 - A) * Y'.

    NaN inputs keep the previous value. A outside (0, 1) returns the input.
    """
    if a <= 0 or a >= 1:
        return series.copy()
    return series.ewm(alpha=a, adjust=False, ignore_na=True).mean()


def _regression_weights(n: int):
    x = np.arange(n, dtype=float)
    centered = x - x.mean()
    return x, centered, (centered ** 2).sum()


def slope(series: pd.Series, n: int) -> pd.Series:
    """Least-squares slope of the last N bars."""
    if n < 2:
        return pd.Series(np.nan, index=series.index)
    _x, centered, denom = _regression_weights(n)
    return series.rolling(window=n, min_periods=n).apply(
        lambda w: np.dot(centered, w - w.mean()) / denom, raw=True
    )


def forcast(series: pd.Series, n: int) -> pd.Series:
    """Linear-regression value at the current bar of each N-bar window."""
    if n < 2:
        return pd.Series(np.nan, index=series.index)
    x, centered, denom = _regression_weights(n)

    def fitted(w):
        k = np.dot(centered, w - w.mean()) / denom
        return w.mean() + k * (x[-1] - x.mean())

    return series.rolling(window=n, min_periods=n).apply(fitted, raw=True)


# ------------------ condition tools ------------------

def barslast(cond: pd.Series) -> pd.Series:
    """Bars since `cond` last held (0 on the bar itself, NaN before the first)."""
    pos = np.arange(len(cond), dtype=float)
    last_true = pd.Series(np.where(cond.to_numpy(dtype=bool), pos, np.nan), index=cond.index).ffill()
    return pd.Series(pos, index=cond.index) - last_true


def valuewhen(cond: pd.Series, x: pd.Series) -> pd.Series:
    """Value of `x` the last time `cond` held."""
    x = x.reindex(cond.index)
    return x.where(cond.to_numpy(dtype=bool)).ffill()


def between(series: pd.Series, a: pd.Series, b: pd.Series) -> pd.Series:
    """True where `series` lies strictly between `a` and `b`, in either order."""
    a = a.reindex(series.index)
    b = b.reindex(series.index)
    return ((a < series) & (series < b)) | ((a > series) & (series > b))


def last(cond: pd.Series, a: int, b: int = 0) -> pd.Series:
    """True where `cond` held on every bar from A bars ago to B bars ago."""
    if a < b:
        return pd.Series(False, index=cond.index)
    width = a - b + 1
    held = cond.astype(float).shift(b).rolling(window=width, min_periods=width).min()
    return (held == 1).fillna(False).astype(bool)


def longcross(left: pd.Series, right: pd.Series, n: int) -> pd.Series:
    """`left` crosses above `right` after staying below it for the previous N-1 bars."""
    right = right.reindex(left.index)
    below = (left < right).astype(float)
    if n > 1:
        held = below.shift(1).rolling(window=n - 1, min_periods=n - 1).min() == 1
    else:
        held = pd.Series(True, index=left.index)
    started = pd.Series(np.arange(len(left)) >= n, index=left.index)
    return held & (left > right) & started


def filter_(cond: pd.Series, n: int) -> pd.Series:
    """Keep a signal, then drop any signal in the next N bars."""
    out = cond.to_numpy(dtype=bool).copy()
    for i in range(len(out)):
        if out[i]:
            out[i + 1:i + 1 + n] = False
    return pd.Series(out, index=cond.index)


def barssincen(cond: pd.Series, n: int) -> pd.Series:
    """Bars since `cond` first held within the last N bars."""
    return cond.astype(float).rolling(window=n, min_periods=n).apply(
        lambda w: len(w) - 1 - np.argmax(w) if w.any() else np.nan, raw=True
    )


def hhvbars(series: pd.Series, n: int) -> pd.Series:
    """Bars since the highest value of the last N bars."""
    return series.rolling(window=n, min_periods=n).apply(lambda w: len(w) - 1 - np.argmax(w), raw=True)


def llvbars(series: pd.Series, n: int) -> pd.Series:
    return series.rolling(window=n, min_periods=n).apply(lambda w: len(w) - 1 - np.argmin(w), raw=True)


def _run_length(values: np.ndarray, beats) -> np.ndarray:
    out = np.zeros(len(values))
    for i in range(1, len(values)):
        count = 0
        for j in range(i - 1, -1, -1):
            if not beats(values[i], values[j]):
                break
            count += 1
        out[i] = count
    return out


def toprange(series: pd.Series) -> pd.Series:
    """How many preceding bars in a row the current value is above."""
    return pd.Series(_run_length(series.to_numpy(dtype=float), lambda cur, prev: prev < cur), index=series.index)


def lowrange(series: pd.Series) -> pd.Series:
    return pd.Series(_run_length(series.to_numpy(dtype=float), lambda cur, prev: prev > cur), index=series.index)


# ------------------ oscillators and channels ------------------

def kdj(close: pd.Series, high: pd.Series, low: pd.Series, n: int = 9, m1: int = 3, m2: int = 3):
    """
    Stochastic KDJ.

    Returns
    -------
    (k, d, j) : tuple of pd.Series
        rsv = (C - LLV(L, n)) * 100 / (HHV(H, n) - LLV(L, n))
        k = EMA(rsv, 2*m1 - 1), d = EMA(k, 2*m2 - 1), j = 3k - 2d
    """
    lowest = llv(low, n)
    rsv = _div((close - lowest) * 100, hhv(high, n) - lowest)
    k = ema(rsv, m1 * 2 - 1)
    d = ema(k, m2 * 2 - 1)
    return k, d, k * 3 - d * 2


def wr(close: pd.Series, high: pd.Series, low: pd.Series, n: int = 10, n1: int = 6):
    """Williams %R over N and N1 bars."""
    def one(length):
        top = hhv(high, length)
        return _div((top - close) * 100, top - llv(low, length))

    return one(n), one(n1)


def bias(close: pd.Series, l1: int = 6, l2: int = 12, l3: int = 24):
    def one(length):
        avg = ma(close, length)
        return _div((close - avg) * 100, avg)

    return one(l1), one(l2), one(l3)


def psy(close: pd.Series, n: int = 12, m: int = 6):
    """Psychological line: share of up bars over N, and its M-bar average."""
    line = count(close > ref(close, 1), n) * 100 / n
    return line, ma(line, m)


def cci(close: pd.Series, high: pd.Series, low: pd.Series, n: int = 14) -> pd.Series:
    """Commodity Channel Index."""
    tp = (high + low + close) / 3
    return _div(tp - ma(tp, n), avedev(tp, n) * 0.015)


def bbi(close: pd.Series, m1: int = 3, m2: int = 6, m3: int = 12, m4: int = 20) -> pd.Series:
    """Bull and bear index: mean of four moving averages."""
    return (ma(close, m1) + ma(close, m2) + ma(close, m3) + ma(close, m4)) / 4


def _true_range(close: pd.Series, high: pd.Series, low: pd.Series) -> pd.Series:
    prev_close = ref(close, 1)
    return pd.concat(
        [high - low, (prev_close - high).abs(), (prev_close - low).abs()], axis=1
    ).max(axis=1)


def dmi(close: pd.Series, high: pd.Series, low: pd.Series, m1: int = 14, m2: int = 6):
    """
    Directional movement.

    Returns
    -------
    (pdi, mdi, adx, adxr) : tuple of pd.Series
    """
    tr = sum_(_true_range(close, high, low), m1)
    hd = high - ref(high, 1)
    ld = ref(low, 1) - low
    dmp = sum_(hd.where(hd > 0, 0.0), m1)
    dmm = sum_(ld.where(ld > 0, 0.0), m1)
    pdi = _div(dmp * 100, tr)
    mdi = _div(dmm * 100, tr)
    adx = ma(_div(mdi - pdi, pdi + mdi).abs() * 100, m2)
    adxr = (adx + ref(adx, m2)) / 2
    return pdi, mdi, adx, adxr


def taq(high: pd.Series, low: pd.Series, n: int = 20):
    """Donchian channel: (up, mid, down)."""
    up = hhv(high, n)
    down = llv(low, n)
    return up, (up + down) / 2, down


def ktn(close: pd.Series, high: pd.Series, low: pd.Series, n: int = 20, m: int = 10):
    """Keltner channel: (upper, mid, lower)."""
    mid = ema((high + low + close) / 3, n)
    width = atr(close, high, low, m) * 2
    return mid + width, mid, mid - width


def trix(close: pd.Series, m1: int = 12, m2: int = 20):
    tr = ema(ema(ema(close, m1), m1), m1)
    prev = ref(tr, 1)
    line = _div((tr - prev) * 100, prev)
    return line, ma(line, m2)


def vr(close: pd.Series, volume: pd.Series, m1: int = 26) -> pd.Series:
    """Volume ratio: volume on up bars over volume on other bars."""
    prev = ref(close, 1)
    up = sum_(volume.where(close > prev, 0.0), m1)
    down = sum_(volume.where(close <= prev, 0.0), m1)
    return _div(up * 100, down)


def cr(close: pd.Series, high: pd.Series, low: pd.Series, n: int = 20) -> pd.Series:
    mid = ref(high + low + close, 1) / 3
    up = sum_((high - mid).clip(lower=0), n)
    down = sum_((mid - low).clip(lower=0), n)
    return _div(up * 100, down)


def emv(high: pd.Series, low: pd.Series, volume: pd.Series, n: int = 14, m: int = 9):
    """Ease of movement and its M-bar average."""
    vol_ratio = _div(ma(volume, n), volume)
    span = high + low
    mid = _div((span - ref(span, 1)) * 100, span)
    line = ma(_div(mid * vol_ratio * (high - low), ma(high - low, n)), n)
    return line, ma(line, m)


def dpo(close: pd.Series, m1: int = 20, m2: int = 10, m3: int = 6):
    line = close - ref(ma(close, m1), m2)
    return line, ma(line, m3)


def brar(open_: pd.Series, close: pd.Series, high: pd.Series, low: pd.Series, m1: int = 26):
    """Sentiment indicators: (AR, BR)."""
    ar = _div(sum_(high - open_, m1) * 100, sum_(open_ - low, m1))
    prev = ref(close, 1)
    br = _div(sum_((high - prev).clip(lower=0), m1) * 100, sum_((prev - low).clip(lower=0), m1))
    return ar, br


def dfma(close: pd.Series, n1: int = 10, n2: int = 50, m: int = 10):
    line = ma(close, n1) - ma(close, n2)
    return line, ma(line, m)


def mtm(close: pd.Series, n: int = 12, m: int = 6):
    """Momentum: C - REF(C, N), and its M-bar average."""
    line = close - ref(close, n)
    return line, ma(line, m)


def mass(high: pd.Series, low: pd.Series, n1: int = 9, n2: int = 25, m: int = 6):
    span = ma(high - low, n1)
    line = sum_(_div(span, ma(span, n1)), n2)
    return line, ma(line, m)


def roc(close: pd.Series, n: int = 12, m: int = 6):
    """Rate of change in percent, and its M-bar average."""
    prev = ref(close, n)
    line = _div((close - prev) * 100, prev)
    return line, ma(line, m)


def expma(close: pd.Series, n1: int = 12, n2: int = 50):
    return ema(close, n1), ema(close, n2)


def obv(close: pd.Series, volume: pd.Series) -> pd.Series:
    """On-balance volume, in units of 10 000."""
    prev = ref(close, 1)
    signed = pd.Series(
        np.where(close > prev, volume, np.where(close < prev, -volume, 0.0)), index=close.index
    )
    return sum_(signed, 0) / 10000


def mfi(close: pd.Series, high: pd.Series, low: pd.Series, volume: pd.Series, n: int = 14) -> pd.Series:
    """Money flow index: a volume-weighted RSI."""
    typ = (high + low + close) / 3
    prev = ref(typ, 1)
    flow = typ * volume
    up = sum_(flow.where(typ > prev, 0.0), n)
    down = sum_(flow.where(typ < prev, 0.0), n)
    # no down flow in the window gives inf, which reads as 100
    return 100 - 100 / (1 + up / down)


def asi(open_: pd.Series, close: pd.Series, high: pd.Series, low: pd.Series, m1: int = 26, m2: int = 10):
    """Accumulation swing index and its M2-bar average."""
    lc = ref(close, 1)
    aa = (high - lc).abs()
    bb = (low - lc).abs()
    cc = (high - ref(low, 1)).abs()
    dd = (lc - ref(open_, 1)).abs()
    r = pd.Series(
        np.where(
            aa > bb,
            aa + bb / 2 + dd / 4,
            np.where(bb > cc, bb + aa / 2 + dd / 4, cc + dd / 4),
        ),
        index=close.index,
    )
    x = (close - lc) + (close - open_) / 2 + (lc - ref(open_, 1))
    si = _div(x * 16 * max_(aa, bb), r)
    line = sum_(si, m1)
    return line, ma(line, m2)


def lon(close: pd.Series, high: pd.Series, low: pd.Series, volume: pd.Series):
    """Long-line indicator and its 10-bar average."""
    vid = _div(sum_(volume, 2), (hhv(high, 2) - llv(low, 2)) * 100)
    rc = (close - ref(close, 1)) * vid
    long_sum = sum_(rc, 0)
    line = sma(long_sum, 10, 1) - sma(long_sum, 20, 1)
    return line, ma(line, 10)


def qrr(volume: pd.Series) -> pd.Series:
    """Volume against the 5-bar average volume ending 5 bars ago."""
    return _div(volume, ma(ref(volume, 5), 5))
