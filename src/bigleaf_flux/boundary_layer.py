"""
Surface-layer stability calculations for big-leaf flux analysis.

This module implements the Monin-Obukhov length, the stability parameter
zeta = (z - d)/L and the integrated stability correction functions for
momentum and heat, together with the roughness Reynolds number. Every
public function accepts scalars or equal-length sequences; missing inputs
propagate as ``pandas.NA`` at the affected rows.

References:
    Dyer, A.J. (1970) A review of flux-profile relationships
    Businger et al. (1971) Flux-profile relationships in the atmospheric surface layer
    Foken, T. (2008) Micrometeorology
    Massman, W.J. (1999) A model study of kB-1 for vegetated surfaces
"""

from typing import Callable, Dict, NamedTuple, Optional, Tuple, Union

import numpy as np
import pandas as pd

from .constants import BigleafConstants, StabilityFormulation, resolve_formulation
from .utils import broadcast_inputs, elementwise, get_column, table_index, to_output


class StabilityState(NamedTuple):
    """Stability parameter and integrated corrections of one call"""

    zeta: Union[float, pd.Series]  # Stability parameter (z-d)/L (-)
    psi_h: Union[float, pd.Series]  # Integrated correction for heat (-)
    psi_m: Union[float, pd.Series]  # Integrated correction for momentum (-)


def _air_density(
    Tair: np.ndarray, pressure: np.ndarray, c: BigleafConstants
) -> np.ndarray:
    return pressure * c.kPa2Pa / (c.Rd * (Tair + c.Kelvin))


def _obukhov_length(
    Tair: np.ndarray,
    pressure: np.ndarray,
    ustar: np.ndarray,
    H: np.ndarray,
    c: BigleafConstants,
) -> np.ndarray:
    rho = _air_density(Tair, pressure, c)
    with np.errstate(divide="ignore", invalid="ignore"):
        L = -rho * c.cp * ustar**3 * (Tair + c.Kelvin) / (c.k * c.g * H)
    # u* <= 0 has no defined turbulence scale
    return np.where(ustar > 0, L, np.nan)


def _stability_parameter(
    Tair: np.ndarray,
    pressure: np.ndarray,
    ustar: np.ndarray,
    H: np.ndarray,
    zr: np.ndarray,
    d: np.ndarray,
    c: BigleafConstants,
) -> np.ndarray:
    # H == 0 gives an infinite length and a neutral zeta of 0
    L = _obukhov_length(Tair, pressure, ustar, H, c)
    with np.errstate(divide="ignore", invalid="ignore"):
        return (zr - d) / L


def _integrated_corrections(
    zeta: np.ndarray,
    slope_h: float,
    slope_m: float,
    y_h: np.ndarray,
    y_m: np.ndarray,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Integrated flux-profile functions with a linear stable branch
    (zeta > 0) and the Paulson (1970) integral for zeta <= 0.
    """
    stable = zeta > 0
    psi_h = np.where(stable, slope_h * zeta, 2.0 * np.log((1.0 + y_h) / 2.0))
    psi_m = np.where(
        stable,
        slope_m * zeta,
        2.0 * np.log((1.0 + y_m) / 2.0)
        + np.log((1.0 + y_m**2) / 2.0)
        - 2.0 * np.arctan(y_m)
        + np.pi / 2.0,
    )
    nan = np.isnan(zeta)
    return np.where(nan, np.nan, psi_h), np.where(nan, np.nan, psi_m)


def _dyer_1970(zeta: np.ndarray, c: BigleafConstants) -> Tuple[np.ndarray, np.ndarray]:
    unstable_zeta = np.minimum(zeta, 0.0)
    y_h = (1.0 - c.dyer_unstable * unstable_zeta) ** 0.5
    y_m = (1.0 - c.dyer_unstable * unstable_zeta) ** 0.25
    return _integrated_corrections(zeta, c.dyer_stable, c.dyer_stable, y_h, y_m)


def _businger_1971(
    zeta: np.ndarray, c: BigleafConstants
) -> Tuple[np.ndarray, np.ndarray]:
    unstable_zeta = np.minimum(zeta, 0.0)
    y_h = c.businger_scale_h * (1.0 - c.businger_unstable_h * unstable_zeta) ** 0.5
    y_m = (1.0 - c.businger_unstable_m * unstable_zeta) ** 0.25
    return _integrated_corrections(
        zeta, c.businger_stable_h, c.businger_stable_m, y_h, y_m
    )


def _no_correction(
    zeta: np.ndarray, c: BigleafConstants
) -> Tuple[np.ndarray, np.ndarray]:
    zeros = np.zeros(np.shape(zeta))
    return zeros, zeros.copy()


STABILITY_FUNCTIONS: Dict[
    StabilityFormulation,
    Callable[[np.ndarray, BigleafConstants], Tuple[np.ndarray, np.ndarray]],
] = {
    StabilityFormulation.DYER_1970: _dyer_1970,
    StabilityFormulation.BUSINGER_1971: _businger_1971,
    StabilityFormulation.NO_STABILITY_CORRECTION: _no_correction,
}


def psi_m_kernel(
    Tair: np.ndarray,
    pressure: np.ndarray,
    ustar: np.ndarray,
    H: np.ndarray,
    zr: float,
    d: float,
    formulation: StabilityFormulation,
    c: BigleafConstants,
) -> np.ndarray:
    """
    Stability correction for momentum on plain float arrays.

    Used by iterative callers that evaluate many trial displacement
    heights on the same observations. ``nan`` marks missing rows, except
    for ``NO_STABILITY_CORRECTION`` which is zero everywhere.
    """
    if formulation is StabilityFormulation.NO_STABILITY_CORRECTION:
        return np.zeros(np.shape(ustar))
    zeta = _stability_parameter(Tair, pressure, ustar, H, zr, d, c)
    return STABILITY_FUNCTIONS[formulation](zeta, c)[1]


@elementwise
def air_density(Tair, pressure, *, constants: Optional[BigleafConstants] = None):
    """
    Density of dry air from the ideal gas law.

    Parameters
    ----------
    Tair : float or array-like
        Air temperature (°C).
    pressure : float or array-like
        Atmospheric pressure (kPa).
    constants : BigleafConstants, optional
        Uses ``Kelvin``, ``kPa2Pa`` and ``Rd``.

    Returns
    -------
    float or pandas.Series
        Air density (kg m⁻³).

    Examples
    --------
    >>> round(air_density(25.0, 100.0), 4)
    1.1684
    """
    c = constants or BigleafConstants()
    return _air_density(Tair, pressure, c)


@elementwise
def reynolds_number(
    Tair, pressure, ustar, z0m, *, constants: Optional[BigleafConstants] = None
):
    """
    Roughness Reynolds number.

    The kinematic viscosity of air is scaled from its value at
    ``Tair0``/``pressure0`` (Massman 1999):

    .. math::
        \\nu = \\nu_0 \\frac{p_0}{p} \\left(\\frac{T}{T_0}\\right)^{1.81}

    and the Reynolds number follows as :math:`Re = z_{0m} u_* / \\nu`.

    Parameters
    ----------
    Tair : float or array-like
        Air temperature (°C).
    pressure : float or array-like
        Atmospheric pressure (kPa).
    ustar : float or array-like
        Friction velocity (m s⁻¹).
    z0m : float or array-like
        Roughness length for momentum (m).
    constants : BigleafConstants, optional
        Uses ``Kelvin``, ``Tair0``, ``pressure0`` and ``nu0``.

    Returns
    -------
    float or pandas.Series
        Roughness Reynolds number (-).

    Examples
    --------
    >>> round(reynolds_number(25.0, 100.0, 0.5, 0.5))
    15868
    """
    c = constants or BigleafConstants()
    nu = c.nu0 * (c.pressure0 / pressure) * ((Tair + c.Kelvin) / c.Tair0) ** 1.81
    return z0m * ustar / nu


@elementwise
def monin_obukhov_length(
    Tair, pressure, ustar, H, *, constants: Optional[BigleafConstants] = None
):
    """
    Monin-Obukhov length from the buoyancy flux.

    .. math::
        L = - \\frac{\\rho c_p u_*^3 T}{k g H}

    Parameters
    ----------
    Tair : float or array-like
        Air temperature (°C).
    pressure : float or array-like
        Atmospheric pressure (kPa).
    ustar : float or array-like
        Friction velocity (m s⁻¹). Rows with ``ustar <= 0`` are missing.
    H : float or array-like
        Sensible heat flux (W m⁻²). ``H == 0`` (infinite length) is
        reported as missing; :func:`stability_parameter` maps it to 0.
    constants : BigleafConstants, optional

    Returns
    -------
    float or pandas.Series
        Monin-Obukhov length (m); negative when unstable.
    """
    c = constants or BigleafConstants()
    return _obukhov_length(Tair, pressure, ustar, H, c)


@elementwise
def stability_parameter(
    Tair, pressure, ustar, H, zr, d, *, constants: Optional[BigleafConstants] = None
):
    """
    Stability parameter zeta = (zr - d) / L.

    Parameters
    ----------
    Tair, pressure, ustar, H : float or array-like
        See :func:`monin_obukhov_length`.
    zr : float or array-like
        Height of the evaluation (m), usually the sensor height.
    d : float or array-like
        Zero-plane displacement height (m).
    constants : BigleafConstants, optional

    Returns
    -------
    float or pandas.Series
        zeta (-); positive when stable, zero at neutral conditions.
    """
    c = constants or BigleafConstants()
    return _stability_parameter(Tair, pressure, ustar, H, zr, d, c)


def stability_correction_functions(
    zeta,
    formulation: Union[StabilityFormulation, str] = StabilityFormulation.DYER_1970,
    *,
    constants: Optional[BigleafConstants] = None,
) -> Tuple:
    """
    Integrated stability correction functions for heat and momentum.

    Stable conditions (zeta > 0) use a linear branch, unstable and
    neutral conditions (zeta <= 0) the integrated forms

    .. math::
        \\psi_h = 2 \\ln\\frac{1 + y_h}{2}, \\qquad
        \\psi_m = 2 \\ln\\frac{1 + y_m}{2} + \\ln\\frac{1 + y_m^2}{2}
                  - 2 \\arctan y_m + \\frac{\\pi}{2}

    ==========================  ==========================  ==========================
    formulation                 stable                      unstable
    ==========================  ==========================  ==========================
    ``Dyer_1970``               psi_h = psi_m = -5 zeta     y_h = (1-16 zeta)^0.5,
                                                            y_m = (1-16 zeta)^0.25
    ``Businger_1971``           psi_h = -7.8 zeta,          y_h = 0.95 (1-11.6 zeta)^0.5,
                                psi_m = -6 zeta             y_m = (1-19.3 zeta)^0.25
    ``no_stability_correction`` 0                           0
    ==========================  ==========================  ==========================

    Parameters
    ----------
    zeta : float or array-like
        Stability parameter (-).
    formulation : StabilityFormulation or str
        Selected formulation.
    constants : BigleafConstants, optional
        Supplies the empirical coefficients.

    Returns
    -------
    (psi_h, psi_m) : tuple
        Floats for scalar input, nullable series otherwise.
        ``no_stability_correction`` gives zeros for every row.
    """
    formulation = resolve_formulation(formulation)
    c = constants or BigleafConstants()
    (zeta_arr,), is_scalar, index = broadcast_inputs(zeta)
    psi_h, psi_m = STABILITY_FUNCTIONS[formulation](zeta_arr, c)
    return to_output(psi_h, is_scalar, index), to_output(psi_m, is_scalar, index)


@elementwise
def _stability_state(Tair, pressure, ustar, H, zr, d, *, formulation, constants):
    zeta = _stability_parameter(Tair, pressure, ustar, H, zr, d, constants)
    psi_h, psi_m = STABILITY_FUNCTIONS[formulation](zeta, constants)
    return zeta, psi_h, psi_m


def stability_state(
    Tair,
    pressure,
    ustar,
    H,
    zr,
    d,
    formulation: Union[StabilityFormulation, str] = StabilityFormulation.DYER_1970,
    *,
    constants: Optional[BigleafConstants] = None,
) -> StabilityState:
    """
    Stability parameter and integrated corrections for one observation
    or aligned sequences of observations.

    Parameters
    ----------
    Tair : float or array-like
        Air temperature (°C).
    pressure : float or array-like
        Atmospheric pressure (kPa).
    ustar : float or array-like
        Friction velocity (m s⁻¹).
    H : float or array-like
        Sensible heat flux (W m⁻²).
    zr : float
        Height at which zeta is evaluated (m).
    d : float
        Zero-plane displacement height (m).
    formulation : StabilityFormulation or str
        Stability correction function, see
        :func:`stability_correction_functions`.
    constants : BigleafConstants, optional

    Returns
    -------
    StabilityState
        ``(zeta, psi_h, psi_m)``. Rows with missing inputs or
        ``ustar <= 0`` are ``pandas.NA``. ``no_stability_correction``
        returns zeros for all three fields at every row.

    Examples
    --------
    >>> s = stability_state(20.0, 100.0, 0.5, -50.0, zr=42.0, d=18.55)
    >>> s.zeta > 0, s.psi_m < 0
    (True, True)
    """
    formulation = resolve_formulation(formulation)
    c = constants or BigleafConstants()

    if formulation is StabilityFormulation.NO_STABILITY_CORRECTION:
        arrays, is_scalar, index = broadcast_inputs(Tair, pressure, ustar, H, zr, d)
        zeros = np.zeros(arrays[0].shape)
        return StabilityState(*(to_output(zeros, is_scalar, index) for _ in range(3)))

    return StabilityState(
        *_stability_state(
            Tair, pressure, ustar, H, zr, d, formulation=formulation, constants=c
        )
    )


def stability_correction(
    data,
    zr: float,
    d: float,
    formulation: Union[StabilityFormulation, str] = StabilityFormulation.DYER_1970,
    *,
    Tair: str = "Tair",
    pressure: str = "pressure",
    ustar: str = "ustar",
    H: str = "H",
    constants: Optional[BigleafConstants] = None,
) -> pd.DataFrame:
    """
    Stability correction for every row of an observation table.

    Parameters
    ----------
    data : pandas.DataFrame or mapping
        Observation series with air temperature (°C), pressure (kPa),
        friction velocity (m s⁻¹) and sensible heat flux (W m⁻²).
    zr : float
        Height at which zeta is evaluated (m).
    d : float
        Zero-plane displacement height (m).
    formulation : StabilityFormulation or str
        Stability correction function.
    Tair, pressure, ustar, H : str
        Column names of the required variables.
    constants : BigleafConstants, optional

    Returns
    -------
    pandas.DataFrame
        Columns ``zeta``, ``psi_h``, ``psi_m`` (nullable ``Float64``),
        indexed like *data*. *data* itself is not modified.

    Raises
    ------
    ConfigurationError
        If a required column is missing or the formulation is unknown.
    """
    columns = [get_column(data, name) for name in (Tair, pressure, ustar, H)]
    index = table_index(data)
    state = stability_state(
        *(pd.Series(np.asarray(col), index=index) for col in columns),
        zr,
        d,
        formulation,
        constants=constants,
    )
    return pd.DataFrame(state._asdict(), index=index)
