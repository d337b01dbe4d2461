"""
Wind speed at arbitrary heights from the logarithmic wind profile.

.. math::
    u(z) = \\frac{u_*}{k} \\left[ \\ln\\left(\\frac{z - d}{z_{0m}}\\right) - \\psi_m \\right]

psi_m follows the sign convention of :mod:`bigleaf_flux.boundary_layer`:
positive for unstable and negative for stable stratification.
"""

import logging
from typing import Optional, Union

import numpy as np
import pandas as pd

from .boundary_layer import stability_state
from .constants import (
    BigleafConstants,
    RoughnessMethod,
    StabilityFormulation,
    resolve_formulation,
)
from .exceptions import ConfigurationError
from .roughness import roughness_parameters
from .utils import elementwise, get_column, is_missing, table_index

logger = logging.getLogger(__name__)


@elementwise
def _log_profile(z, ustar, d, z0m, psi_m, *, constants: BigleafConstants):
    z_diff = np.where(z - d > 0, z - d, np.nan)
    return np.maximum(0.0, ustar / constants.k * (np.log(z_diff / z0m) - psi_m))


def wind_speed(
    z,
    ustar,
    d,
    z0m,
    psi_m=None,
    *,
    Tair=None,
    pressure=None,
    H=None,
    stab_formulation: Union[
        StabilityFormulation, str
    ] = StabilityFormulation.NO_STABILITY_CORRECTION,
    constants: Optional[BigleafConstants] = None,
):
    """
    Wind speed at height *z* for single observations or aligned arrays.

    Parameters
    ----------
    z : float
        Height above ground (m).
    ustar : float or array-like
        Friction velocity (m s⁻¹).
    d : float
        Zero-plane displacement height (m).
    z0m : float or array-like
        Roughness length for momentum (m).
    psi_m : float or array-like, optional
        Stability correction for momentum at *z*. When omitted it is zero
        for ``no_stability_correction`` and computed from *Tair*,
        *pressure* and *H* otherwise.
    Tair, pressure, H : float or array-like, optional
        Air temperature (°C), pressure (kPa) and sensible heat flux
        (W m⁻²) for computing psi_m.
    stab_formulation : StabilityFormulation or str
        Defaults to the neutral logarithmic law.
    constants : BigleafConstants, optional

    Returns
    -------
    float or pandas.Series
        Wind speed (m s⁻¹), never negative. Missing where an input is
        missing or ``z <= d``.

    Raises
    ------
    ConfigurationError
        If psi_m must be computed but *Tair*, *pressure* or *H* is missing.

    Examples
    --------
    >>> round(wind_speed(30.0, 0.5, 18.55, 2.65), 3)
    1.785
    """
    formulation = resolve_formulation(stab_formulation)
    c = constants or BigleafConstants()

    if psi_m is None:
        if formulation is StabilityFormulation.NO_STABILITY_CORRECTION:
            psi_m = 0.0
        else:
            if Tair is None or pressure is None or H is None:
                raise ConfigurationError(
                    f"{formulation.value} stability correction requires Tair, pressure and H"
                )
            psi_m = stability_state(
                Tair, pressure, ustar, H, z, d, formulation, constants=c
            ).psi_m

    return _log_profile(z, ustar, d, z0m, psi_m, constants=c)


def wind_profile(
    data,
    z: float,
    d: float,
    z0m=None,
    psi_m=None,
    *,
    zh: Optional[float] = None,
    zr: Optional[float] = None,
    stab_formulation: Union[StabilityFormulation, str] = StabilityFormulation.DYER_1970,
    Tair: str = "Tair",
    pressure: str = "pressure",
    ustar: str = "ustar",
    H: str = "H",
    wind: str = "wind",
    constants: Optional[BigleafConstants] = None,
) -> pd.Series:
    """
    Wind speed at height *z* for every row of an observation series.

    Three call shapes are supported:

    1. *z0m* and *psi_m* given: the profile is evaluated directly.
    2. *z0m* given, *psi_m* omitted: psi_m is computed per row at height
       *z* with *stab_formulation* (zero for ``no_stability_correction``).
    3. *z0m* omitted: *zh* and *zr* are required and z0m is first estimated
       with the ``wind_profile`` roughness regime at displacement height
       *d*, then shape 2 applies.

    Parameters
    ----------
    data : pandas.DataFrame or mapping
        Observation series with friction velocity and, depending on the
        call shape, air temperature, pressure, sensible heat flux and
        wind speed at *zr*.
    z : float
        Height of the evaluation (m).
    d : float
        Zero-plane displacement height (m).
    z0m : float, optional
        Roughness length for momentum (m).
    psi_m : float or array-like, optional
        Stability correction for momentum at *z*, one value per row.
    zh, zr : float, optional
        Canopy and sensor height (m); required when *z0m* is omitted.
    stab_formulation : StabilityFormulation or str
        Stability correction used for psi_m and the z0m estimate.
    Tair, pressure, ustar, H, wind : str
        Column names in *data*.
    constants : BigleafConstants, optional

    Returns
    -------
    pandas.Series
        Wind speed at *z* (m s⁻¹), nullable ``Float64``, one value per row
        and indexed like *data*.

    Raises
    ------
    ConfigurationError
        If *z0m* is omitted without both *zh* and *zr*, or a required
        column is missing. Checked before any computation.
    """
    formulation = resolve_formulation(stab_formulation)
    c = constants or BigleafConstants()

    if z0m is None and (zh is None or zr is None or is_missing(zh) or is_missing(zr)):
        raise ConfigurationError(
            "z0m is not given; zh and zr are required to estimate it from the wind profile"
        )
    index = table_index(data)
    ustar_col = pd.Series(np.asarray(get_column(data, ustar)), index=index)

    if psi_m is None and formulation is not StabilityFormulation.NO_STABILITY_CORRECTION:
        met = [
            pd.Series(np.asarray(get_column(data, name)), index=index)
            for name in (Tair, pressure, H)
        ]
    else:
        met = None

    if z0m is None:
        z0m = roughness_parameters(
            RoughnessMethod.WIND_PROFILE,
            zh,
            zr,
            data=data,
            d=d,
            stab_formulation=formulation,
            Tair=Tair,
            pressure=pressure,
            ustar=ustar,
            H=H,
            wind=wind,
            constants=c,
        ).z0m
        logger.debug("Estimated z0m=%.4f m from the wind profile", z0m)

    if psi_m is None:
        if met is None:
            psi_m = 0.0
        else:
            psi_m = stability_state(
                met[0], met[1], ustar_col, met[2], z, d, formulation, constants=c
            ).psi_m
    elif np.ndim(psi_m) > 0 and not isinstance(psi_m, pd.Series):
        psi_m = pd.Series(np.asarray(psi_m), index=index)

    result = _log_profile(z, ustar_col, d, z0m, psi_m, constants=c)
    return result.rename(f"wind_{z:g}m")
