import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

# Ensure repository root and package paths are available for imports
REPO_ROOT = Path(__file__).resolve().parents[1]
PKG_SRC = REPO_ROOT / 'formula_lang' / 'src'
if str(REPO_ROOT) not in sys.path:
    sys.path.append(str(REPO_ROOT))
if str(PKG_SRC) not in sys.path:
    sys.path.append(str(PKG_SRC))


@pytest.fixture
def sample_bars():
    # three bars where HIGH is always above CLOSE
    return {
        "HIGH": np.array([10.0, 11.0, 12.0]),
        "CLOSE": np.array([9.0, 10.0, 11.0]),
    }


@pytest.fixture
def ohlcv_frame():
    idx = pd.date_range("2024-01-01", periods=6, freq="D")
    return pd.DataFrame(
        {
            "Open": [10.0, 10.5, 11.0, 10.8, 11.2, 11.6],
            "High": [10.8, 11.2, 11.5, 11.3, 11.9, 12.1],
            "Low": [9.8, 10.2, 10.7, 10.5, 11.0, 11.4],
            "Close": [10.5, 11.0, 10.9, 11.2, 11.8, 12.0],
            "Volume": [1000, 1200, 900, 1500, 1300, 1100],
        },
        index=idx,
    )
