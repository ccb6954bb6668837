import numpy as np
import pandas as pd
import pytest

from formula_lang.src.indicators import (
    atr,
    avedev,
    barslast,
    barssincen,
    bbi,
    between,
    bias,
    boll,
    brar,
    cci,
    count,
    cross,
    diff,
    dma,
    dmi,
    dpo,
    dtprice,
    ema,
    every,
    exist,
    filter_,
    forcast,
    hhv,
    hhvbars,
    if_,
    kdj,
    ktn,
    last,
    llv,
    llvbars,
    ln,
    longcross,
    lowrange,
    ma,
    macd,
    max_,
    mfi,
    min_,
    mtm,
    obv,
    pow_,
    psy,
    qrr,
    rd,
    ref,
    ret,
    roc,
    rsi,
    slope,
    sma,
    sqrt,
    std,
    sum_,
    taq,
    toprange,
    trix,
    valuewhen,
    vr,
    wma,
    wr,
    ztprice,
)


def values(s):
    return [None if pd.isna(v) else round(float(v), 4) for v in s]


def test_ma_and_ref():
    s = pd.Series([1.0, 2.0, 3.0, 4.0, 5.0])
    assert values(ma(s, 3)) == [None, None, 2.0, 3.0, 4.0]
    assert values(ref(s, 1)) == [None, 1.0, 2.0, 3.0, 4.0]
    assert values(diff(s, 2)) == [None, None, 2.0, 2.0, 2.0]


def test_ema_seeds_with_first_value():
    s = pd.Series([1.0, 2.0, 3.0])
    # alpha = 2 / (3 + 1) = 0.5
    assert values(ema(s, 3)) == [1.0, 1.5, 2.25]


def test_sma_china_style():
    s = pd.Series([1.0, 2.0, 3.0])
    # alpha = M / N = 1 / 3
    assert values(sma(s, 3, 1)) == [1.0, 1.3333, 1.8889]


def test_sum_std_wma():
    s = pd.Series([1.0, 2.0, 3.0, 4.0])
    assert values(sum_(s, 0)) == [1.0, 3.0, 6.0, 10.0]
    assert values(sum_(s, 2)) == [None, 3.0, 5.0, 7.0]
    assert values(std(s, 2)) == [None, 0.5, 0.5, 0.5]
    assert values(wma(s, 3)) == [None, None, 2.3333, 3.3333]


def test_hhv_llv_avedev():
    s = pd.Series([1.0, 3.0, 2.0])
    assert values(hhv(s, 2)) == [None, 3.0, 3.0]
    assert values(llv(s, 2)) == [None, 1.0, 2.0]
    assert values(avedev(pd.Series([1.0, 2.0, 3.0]), 3)) == [None, None, 0.6667]


def test_boolean_windows():
    cond = pd.Series([True, False, True, True])
    assert values(count(cond, 2)) == [None, 1.0, 1.0, 2.0]
    assert every(cond, 2).tolist() == [False, False, False, True]
    assert exist(cond, 2).tolist() == [False, True, True, True]


def test_cross():
    fast = pd.Series([1.0, 2.0, 3.0, 1.0, 3.0])
    slow = pd.Series([2.0, 2.0, 2.0, 2.0, 2.0])
    assert cross(fast, slow).tolist() == [False, False, True, False, True]
    # the first bar never crosses
    assert cross(pd.Series([3.0]), pd.Series([1.0])).tolist() == [False]


def test_if_max_min():
    cond = pd.Series([True, False, True])
    a = pd.Series([1.0, 2.0, 3.0])
    b = pd.Series([9.0, 8.0, 7.0])
    assert if_(cond, a, b).tolist() == [1.0, 8.0, 3.0]
    assert max_(a, pd.Series([2.0, 2.0, 2.0])).tolist() == [2.0, 2.0, 3.0]
    assert min_(a, pd.Series([2.0, 2.0, 2.0])).tolist() == [1.0, 2.0, 2.0]


def test_rsi_monotonic_series():
    s = pd.Series(np.arange(1, 31), dtype=float)
    r = rsi(s, 14)
    assert pd.isna(r.iloc[0])
    assert (r.iloc[1:] == 100.0).all()


def test_macd_hist_convention():
    s = pd.Series(np.sin(np.linspace(0, 6, 60)) + 10)
    dif, dea, hist = macd(s)
    assert np.allclose(hist, (dif - dea) * 2)
    assert np.allclose(dea, ema(dif, 9))


def test_boll_bands():
    s = pd.Series(np.arange(1, 41), dtype=float)
    upper, mid, lower = boll(s, 20, 2)
    assert mid.equals(ma(s, 20))
    mask = mid.notna()
    assert (upper[mask] > mid[mask]).all()
    assert (lower[mask] < mid[mask]).all()
    assert np.allclose((upper - mid)[mask], 2 * std(s, 20)[mask])


def test_atr():
    high = pd.Series([10.0, 11.0, 12.0])
    low = pd.Series([8.0, 9.0, 10.0])
    close = pd.Series([9.0, 10.0, 11.0])
    assert values(atr(close, high, low, 2)) == [None, 2.0, 2.0]


def test_price_limits():
    s = pd.Series([10.0, 20.0])
    assert ztprice(s, 0.1).tolist() == pytest.approx([11.0, 22.0])
    assert dtprice(s, 0.1).tolist() == pytest.approx([9.0, 18.0])


def test_math_helpers():
    s = pd.Series([1.0, np.e, 0.0, -1.0])
    assert values(ln(s)) == [0.0, 1.0, None, None]
    assert values(sqrt(pd.Series([4.0, -1.0]))) == [2.0, None]
    assert values(pow_(pd.Series([2.0, 3.0]), 2)) == [4.0, 9.0]
    assert values(rd(pd.Series([1.23456, 2.5]), 2)) == [1.23, 2.5]
    assert ret(pd.Series([1.0, 2.0, 3.0])) == 3.0
    assert ret(pd.Series([1.0, 2.0, 3.0]), 2) == 2.0
    assert np.isnan(ret(pd.Series([1.0]), 3))


def test_dma_holds_through_gaps():
    s = pd.Series([1.0, np.nan, 3.0])
    # Y = 0.5 * X + 0.5 * Y', the gap keeps the previous value
    assert values(dma(s, 0.5)) == [1.0, 1.0, 2.0]
    # out-of-range weights return the input
    assert values(dma(pd.Series([1.0, 2.0]), 1.5)) == [1.0, 2.0]


def test_slope_and_forcast():
    line = pd.Series([1.0, 3.0, 5.0, 7.0])
    assert values(slope(line, 3)) == [None, None, 2.0, 2.0]
    assert values(forcast(line, 3)) == [None, None, 5.0, 7.0]

    s = pd.Series([1.0, 2.0, 4.0])
    assert values(slope(s, 3)) == [None, None, 1.5]
    # mean 7/3 plus one step of the fitted slope
    assert values(forcast(s, 3)) == [None, None, 3.8333]


def test_barslast_and_valuewhen():
    cond = pd.Series([False, True, False, False, True, False])
    assert values(barslast(cond)) == [None, 0.0, 1.0, 2.0, 0.0, 1.0]

    x = pd.Series([10.0, 11.0, 12.0, 13.0, 14.0, 15.0])
    assert values(valuewhen(cond, x)) == [None, 11.0, 11.0, 11.0, 14.0, 14.0]


def test_barssincen():
    cond = pd.Series([False, True, False, True, False, False])
    # distance back to the first true bar inside each 3-bar window
    assert values(barssincen(cond, 3)) == [None, None, 1.0, 2.0, 1.0, 2.0]


def test_between_either_order():
    s = pd.Series([1.0, 5.0, 10.0])
    a = pd.Series([2.0, 2.0, 12.0])
    b = pd.Series([8.0, 8.0, 8.0])
    assert between(s, a, b).tolist() == [False, True, True]


def test_last_window():
    cond = pd.Series([True, True, True, False, True, True])
    # held on every bar from 2 bars ago to 1 bar ago
    assert last(cond, 2, 1).tolist() == [False, False, True, True, False, False]
    assert last(cond, 1, 2).tolist() == [False] * 6


def test_longcross():
    left = pd.Series([1.0, 1.0, 1.0, 3.0, 1.0])
    right = pd.Series([2.0, 2.0, 2.0, 2.0, 2.0])
    assert longcross(left, right, 3).tolist() == [False, False, False, True, False]
    # not below long enough before the cross
    left = pd.Series([3.0, 1.0, 3.0, 1.0, 3.0])
    assert not longcross(left, right, 3).any()


def test_filter_drops_signals_after_a_hit():
    cond = pd.Series([True, True, False, True, True, True])
    assert filter_(cond, 2).tolist() == [True, False, False, True, False, False]


def test_bar_position_counters():
    s = pd.Series([1.0, 3.0, 2.0, 5.0, 4.0])
    assert values(hhvbars(s, 3)) == [None, None, 1.0, 0.0, 1.0]
    assert values(llvbars(s, 3)) == [None, None, 2.0, 1.0, 2.0]
    assert values(toprange(s)) == [0.0, 1.0, 0.0, 3.0, 0.0]
    assert values(lowrange(s)) == [0.0, 0.0, 1.0, 0.0, 1.0]


def test_kdj_with_unit_smoothing():
    close = pd.Series([1.0, 2.0, 1.5])
    high = pd.Series([1.0, 2.0, 2.0])
    low = pd.Series([1.0, 1.0, 1.0])
    # smoothing spans of 1 leave K = D = J = RSV
    k, d, j = kdj(close, high, low, 2, 1, 1)
    assert values(k) == [None, 100.0, 50.0]
    assert values(d) == values(k)
    assert values(j) == values(k)


def test_wr_two_lengths():
    close = pd.Series([1.0, 2.0, 3.0])
    high = pd.Series([2.0, 3.0, 4.0])
    low = pd.Series([0.0, 1.0, 2.0])
    fast, slow = wr(close, high, low, 2, 3)
    assert values(fast) == [None, 33.3333, 33.3333]
    assert values(slow) == [None, None, 25.0]


def test_bias_psy_mtm_roc():
    close = pd.Series([1.0, 2.0, 3.0, 4.0, 5.0, 6.0])
    first, _second, _third = bias(close, 2, 3, 4)
    assert values(first) == [None, 33.3333, 20.0, 14.2857, 11.1111, 9.0909]

    line, avg = psy(pd.Series([1.0, 2.0, 1.0, 2.0, 3.0]), 2, 2)
    assert values(line) == [None, 50.0, 50.0, 50.0, 100.0]
    assert values(avg) == [None, None, 50.0, 50.0, 75.0]

    momentum, momentum_ma = mtm(pd.Series([1.0, 2.0, 4.0]), 1, 2)
    assert values(momentum) == [None, 1.0, 2.0]
    assert values(momentum_ma) == [None, None, 1.5]

    rate, rate_ma = roc(pd.Series([1.0, 2.0, 4.0]), 1, 2)
    assert values(rate) == [None, 100.0, 100.0]
    assert values(rate_ma) == [None, None, 100.0]


def test_cci_and_bbi():
    c = pd.Series([1.0, 2.0, 3.0])
    # typical price equals close; mean deviation of 1,2,3 is 2/3
    assert values(cci(c, c, c, 3)) == [None, None, 100.0]
    assert values(bbi(pd.Series([2.0, 4.0]), 1, 2, 2, 1)) == [None, 3.5]


def test_dmi_on_steady_uptrend():
    high = pd.Series(np.arange(2.0, 12.0))
    low = high - 1
    close = high - 0.5
    pdi, mdi, adx, adxr = dmi(close, high, low, 3, 2)
    # true range 1.5 per bar, +DM 1 per bar, no -DM
    assert values(pdi)[3:] == [66.6667] * 7
    assert values(mdi)[3:] == [0.0] * 7
    assert values(adx)[3:] == [100.0] * 7
    assert values(adxr)[5:] == [100.0] * 5


def test_trix_flat_series():
    line, avg = trix(pd.Series([5.0] * 4), 3, 2)
    assert values(line) == [None, 0.0, 0.0, 0.0]
    assert values(avg) == [None, None, 0.0, 0.0]


def test_volume_indicators():
    close = pd.Series([1.0, 2.0, 1.0, 1.0])
    volume = pd.Series([100.0, 200.0, 300.0, 400.0])
    assert values(obv(close, volume)) == [0.0, 0.02, -0.01, -0.01]

    c = pd.Series([1.0, 2.0, 1.0, 2.0])
    ones = pd.Series([1.0] * 4)
    # first window has only inflow
    assert values(mfi(c, c, c, ones, 2)) == [None, 100.0, 66.6667, 66.6667]

    close = pd.Series([1.0, 2.0, 1.0, 3.0])
    volume = pd.Series([10.0, 20.0, 30.0, 40.0])
    assert values(vr(close, volume, 2)) == [None, None, 66.6667, 133.3333]

    v = pd.Series(np.arange(1.0, 12.0))
    assert values(qrr(v))[9:] == [3.3333, 2.75]
    assert values(qrr(v))[:9] == [None] * 9


def test_channels():
    high = pd.Series([3.0, 4.0, 5.0])
    low = pd.Series([1.0, 2.0, 0.0])
    up, mid, down = taq(high, low, 2)
    assert values(up) == [None, 4.0, 5.0]
    assert values(mid) == [None, 2.5, 2.5]
    assert values(down) == [None, 1.0, 0.0]

    close = pd.Series(np.linspace(10, 20, 30))
    upper, mid, lower = ktn(close, close + 1, close - 1, 5, 3)
    np.testing.assert_allclose((upper - mid).dropna(), (mid - lower).dropna())


def test_brar_and_dpo():
    o = pd.Series([2.0, 2.0])
    h = pd.Series([3.0, 3.0])
    l = pd.Series([1.0, 1.0])
    c = pd.Series([2.0, 2.0])
    ar, br = brar(o, c, h, l, 2)
    assert values(ar) == [None, 100.0]
    assert values(br) == [None, 100.0]

    line, avg = dpo(pd.Series([1.0, 2.0, 3.0, 4.0, 5.0, 6.0]), 2, 1, 2)
    assert values(line) == [None, None, 1.5, 1.5, 1.5, 1.5]
    assert values(avg) == [None, None, None, 1.5, 1.5, 1.5]
