"""
Physical constants and configuration parameters for big-leaf surface-layer calculations.

This module provides:
1. Physical constants
2. Empirical coefficients of the stability and roughness formulations
3. Formulation selectors
4. The ``BigleafConstants`` bundle passed explicitly to every calculation
"""

import dataclasses
from dataclasses import dataclass
from enum import Enum
from typing import Union

from .exceptions import ConfigurationError

# Physical constants
K_VON_KARMAN = 0.41  # von Karman constant (dimensionless)
G0 = 9.81  # Gravitational acceleration (m/s^2)
CP_AIR = 1004.834  # Specific heat of air at constant pressure (J/kg/K)
RD_DRY_AIR = 287.0586  # Specific gas constant for dry air (J/kg/K)
PRANDTL = 0.71  # Prandtl number (dimensionless)

# Temperature and pressure references
T_ZERO_C = 273.15  # 0°C in Kelvin
P_REFERENCE = 101.325  # Standard atmospheric pressure (kPa)
KPA_TO_PA = 1000.0  # Convert kPa to Pa

# Kinematic viscosity of air at T_ZERO_C and P_REFERENCE (m^2/s)
NU_AIR_REFERENCE = 1.327e-05


class StabilityFormulation(Enum):
    """Integrated stability correction functions for momentum and heat"""

    DYER_1970 = "Dyer_1970"
    BUSINGER_1971 = "Businger_1971"
    NO_STABILITY_CORRECTION = "no_stability_correction"


class RoughnessMethod(Enum):
    """Regimes for estimating displacement height and roughness length"""

    CANOPY_HEIGHT = "canopy_height"
    CANOPY_HEIGHT_LAI = "canopy_height_LAI"
    WIND_PROFILE = "wind_profile"


def resolve_formulation(
    formulation: Union[StabilityFormulation, str],
) -> StabilityFormulation:
    """Return the ``StabilityFormulation`` named by *formulation*.

    Raises
    ------
    ConfigurationError
        If *formulation* is not a known member or member value.
    """
    if isinstance(formulation, StabilityFormulation):
        return formulation
    try:
        return StabilityFormulation(formulation)
    except ValueError:
        known = ", ".join(f.value for f in StabilityFormulation)
        raise ConfigurationError(
            f"Unknown stability formulation {formulation!r}; expected one of {known}"
        ) from None


def resolve_method(method: Union[RoughnessMethod, str]) -> RoughnessMethod:
    """Return the ``RoughnessMethod`` named by *method*."""
    if isinstance(method, RoughnessMethod):
        return method
    try:
        return RoughnessMethod(method)
    except ValueError:
        known = ", ".join(m.value for m in RoughnessMethod)
        raise ConfigurationError(
            f"Unknown roughness method {method!r}; expected one of {known}"
        ) from None


@dataclass(frozen=True)
class BigleafConstants:
    """
    Bundle of physical constants and empirical coefficients.

    A default instance reproduces the values used throughout the package.
    Individual entries are overridden by building a new bundle, the
    default is never modified:

    >>> c = BigleafConstants().replace(k=0.40)
    >>> c.k, BigleafConstants().k
    (0.4, 0.41)

    Attributes
    ----------
    Kelvin : float
        Offset between degrees Celsius and Kelvin.
    pressure0 : float
        Reference pressure (kPa) for the kinematic viscosity of air.
    Tair0 : float
        Reference temperature (K) for the kinematic viscosity of air.
    kPa2Pa : float
        Conversion factor kPa to Pa.
    cp : float
        Specific heat of air at constant pressure (J kg⁻¹ K⁻¹).
    Rd : float
        Gas constant of dry air (J kg⁻¹ K⁻¹).
    k : float
        von Kármán constant.
    g : float
        Gravitational acceleration (m s⁻²).
    Pr : float
        Prandtl number.
    nu0 : float
        Kinematic viscosity of air at ``Tair0`` and ``pressure0`` (m² s⁻¹).
    frac_d, frac_z0m : float
        Displacement height and roughness length as fractions of canopy
        height (Hanson 1991).
    cd, hs : float
        Mean drag coefficient of canopy elements and roughness length of
        the soil surface (m) after Choudhury & Monteith (1988).
    dyer_stable, dyer_unstable : float
        Slope of the stable branch and coefficient of the unstable branch
        of Dyer (1970).
    businger_stable_m, businger_stable_h : float
        Stable slopes for momentum and heat after Businger et al. (1971).
    businger_unstable_m, businger_unstable_h, businger_scale_h : float
        Unstable coefficients for momentum and heat after Businger et al.
        (1971).
    min_rows : int
        Minimum number of valid rows of the wind-profile regression.
    d_search_points : int
        Number of grid candidates for the displacement height search.
    d_search_maxiter : int
        Iteration cap of the bounded refinement of the search.
    d_search_xatol : float
        Absolute tolerance (m) of the refinement.
    """

    Kelvin: float = T_ZERO_C
    pressure0: float = P_REFERENCE
    Tair0: float = T_ZERO_C
    kPa2Pa: float = KPA_TO_PA
    cp: float = CP_AIR
    Rd: float = RD_DRY_AIR
    k: float = K_VON_KARMAN
    g: float = G0
    Pr: float = PRANDTL
    nu0: float = NU_AIR_REFERENCE

    # Roughness parameters
    frac_d: float = 0.7
    frac_z0m: float = 0.1
    cd: float = 0.2
    hs: float = 0.01

    # Stability functions
    dyer_stable: float = -5.0
    dyer_unstable: float = 16.0
    businger_stable_m: float = -6.0
    businger_stable_h: float = -7.8
    businger_unstable_m: float = 19.3
    businger_unstable_h: float = 11.6
    businger_scale_h: float = 0.95

    # Wind-profile regression
    min_rows: int = 2
    d_search_points: int = 50
    d_search_maxiter: int = 100
    d_search_xatol: float = 1e-6

    def replace(self, **changes) -> "BigleafConstants":
        """Return a copy with the named entries replaced."""
        try:
            return dataclasses.replace(self, **changes)
        except TypeError as e:
            raise ConfigurationError(f"Invalid constant override: {e}") from None
