import pytest
import numpy as np
import pandas as pd

from bigleaf_flux.wind import wind_speed

# Site geometry of a tall spruce forest
ZH = 26.5  # Canopy height (m)
ZR = 42.0  # Sensor height (m)
LAI = 7.6  # Leaf area index (m2/m2)
D_TRUE = 0.7 * ZH  # Displacement height used to generate wind (m)
Z0M_TRUE = 2.65  # Roughness length used to generate wind (m)


def _diurnal_cycle(n_rows: int) -> dict:
    """Half-hourly met data with stable nights and unstable days"""
    hours = np.arange(n_rows) * 0.5
    daylight = np.clip(np.sin((hours - 6.0) / 12.0 * np.pi), 0.0, None)
    return {
        "Tair": 14.0 + 8.0 * daylight,  # °C
        "pressure": np.full(n_rows, 99.5),  # kPa
        "ustar": 0.3 + 0.3 * daylight,  # m/s
        "H": -30.0 + 330.0 * daylight,  # W/m2
    }


@pytest.fixture
def flux_series():
    """48 half-hours with wind at ZR from the Dyer-corrected log profile"""
    met = _diurnal_cycle(48)
    wind = wind_speed(
        ZR,
        met["ustar"],
        D_TRUE,
        Z0M_TRUE,
        Tair=met["Tair"],
        pressure=met["pressure"],
        H=met["H"],
        stab_formulation="Dyer_1970",
    )
    df = pd.DataFrame(met, index=pd.date_range("2024-06-15", periods=48, freq="30min"))
    df["wind"] = wind.to_numpy(dtype=float)
    return df


@pytest.fixture
def flux_series_with_gaps(flux_series):
    """Same series with missing friction velocity and heat flux in a few rows"""
    df = flux_series.copy()
    df.iloc[3, df.columns.get_loc("ustar")] = np.nan
    df.iloc[10, df.columns.get_loc("H")] = np.nan
    df.iloc[20, df.columns.get_loc("ustar")] = 0.0
    return df
