"""
Zero-plane displacement height and roughness length for momentum.

Three regimes are available, selected with :class:`RoughnessMethod`:

* ``canopy_height`` - fixed fractions of canopy height (Hanson 1991)
* ``canopy_height_LAI`` - closed form in canopy height and leaf area
  index (Choudhury & Monteith 1988)
* ``wind_profile`` - regression of the stability-corrected logarithmic
  wind profile on an observation series, with a bounded search for the
  displacement height

Every regime returns a :class:`RoughnessEstimate` with the same fields.

References:
    Hanson, C.L. (1991) Estimating evaporation from vegetated surfaces
    Choudhury, B.J., Monteith, J.L. (1988) A four-layer model for the heat budget of homogeneous land surfaces
    Foken, T. (2008) Micrometeorology
"""

import logging
from typing import Any, Dict, NamedTuple, Optional, Union

import numpy as np
import statsmodels.api as sm
from scipy.optimize import minimize_scalar

from .boundary_layer import psi_m_kernel
from .constants import (
    BigleafConstants,
    RoughnessMethod,
    StabilityFormulation,
    resolve_formulation,
    resolve_method,
)
from .exceptions import ConfigurationError, InsufficientDataError
from .utils import MISSING, as_float_array, elementwise, get_column, is_missing

logger = logging.getLogger(__name__)


class RoughnessEstimate(NamedTuple):
    """Displacement height, roughness length and its standard error"""

    d: Any  # Zero-plane displacement height (m)
    z0m: Any  # Roughness length for momentum (m)
    z0m_se: Any  # Standard error of z0m (m); missing unless fitted


@elementwise
def _canopy_height(zh, *, c: BigleafConstants):
    return c.frac_d * zh, c.frac_z0m * zh


@elementwise
def _canopy_height_lai(zh, LAI, *, c: BigleafConstants):
    X = c.cd * np.where(LAI > 0, LAI, np.nan)
    d = 1.1 * zh * np.log(1.0 + X**0.25)
    z0m = np.where(X <= 0.2, c.hs + 0.3 * X**0.5, 0.3 * zh * (1.0 - d / zh))
    return d, z0m


def _from_canopy_height(zh, c: BigleafConstants, **_) -> RoughnessEstimate:
    d, z0m = _canopy_height(zh, c=c)
    return RoughnessEstimate(d, z0m, MISSING)


def _from_canopy_height_lai(zh, c: BigleafConstants, LAI=None, **_) -> RoughnessEstimate:
    d, z0m = _canopy_height_lai(zh, LAI, c=c)
    return RoughnessEstimate(d, z0m, MISSING)


class _ProfileRegression:
    """
    Transformed-profile regression for one observation series.

    For a trial displacement height *d* each row gives

    .. math::
        y_i = \\ln(z_r - d) - \\left(\\frac{k u_i}{u_{*,i}} + \\psi_{m,i}\\right)
            = \\ln z_{0m,i}

    and an intercept-only least squares fit of :math:`y_i` estimates
    :math:`\\ln z_{0m}`. Rows with non-finite :math:`y_i` or with a row
    estimate above canopy height are left out.
    """

    def __init__(
        self,
        obs: Dict[str, np.ndarray],
        zh: float,
        zr: float,
        formulation: StabilityFormulation,
        psi_m: Optional[np.ndarray],
        c: BigleafConstants,
    ):
        self.obs = obs
        self.zh = zh
        self.zr = zr
        self.formulation = formulation
        self.psi_m = psi_m
        self.c = c

    @property
    def depends_on_d(self) -> bool:
        """False when psi_m is fixed, which leaves d unidentifiable."""
        return self.psi_m is None

    def _psi_m(self, d: float) -> np.ndarray:
        if self.psi_m is not None:
            return self.psi_m
        return psi_m_kernel(
            self.obs["Tair"],
            self.obs["pressure"],
            self.obs["ustar"],
            self.obs["H"],
            self.zr,
            d,
            self.formulation,
            self.c,
        )

    def fit(self, d: float):
        """OLS results for trial *d*, or ``None`` with too few valid rows."""
        ustar = self.obs["ustar"]
        with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
            t = self.c.k * self.obs["wind"] / ustar + self._psi_m(d)
            y = np.log(self.zr - d) - t
            valid = np.isfinite(y) & (ustar > 0) & (np.exp(y) <= self.zh)
        n = int(valid.sum())
        if n < self.c.min_rows:
            return None
        return sm.OLS(y[valid], np.ones(n)).fit()

    def objective(self, d: float) -> float:
        results = self.fit(d)
        if results is None:
            return np.inf
        return float(results.mse_resid)

    def search_d(self) -> float:
        """
        Displacement height in (0, zh) minimising the residual variance.

        A fixed grid locates the basin, a bounded Brent refinement with
        an iteration cap polishes it inside the neighbouring grid cells.
        """
        c = self.c
        grid = np.linspace(0.0, self.zh, c.d_search_points + 2)[1:-1]
        values = np.array([self.objective(d) for d in grid])
        i = int(np.argmin(values))
        if not np.isfinite(values[i]):
            raise InsufficientDataError(
                "No displacement height in (0, zh) leaves enough valid rows"
            )

        lower = grid[i - 1] if i > 0 else 0.0
        upper = grid[i + 1] if i < len(grid) - 1 else self.zh
        result = minimize_scalar(
            self.objective,
            bounds=(lower, upper),
            method="bounded",
            options={"xatol": c.d_search_xatol, "maxiter": c.d_search_maxiter},
        )
        d = float(result.x) if result.fun <= values[i] else float(grid[i])
        logger.debug(
            "Displacement search: d=%.4f m after %d grid and %d refinement evaluations",
            d,
            len(grid),
            result.nfev,
        )
        return d


def _from_wind_profile(
    zh,
    c: BigleafConstants,
    zr=None,
    data=None,
    psi_m=None,
    d=None,
    formulation: StabilityFormulation = StabilityFormulation.DYER_1970,
    columns: Optional[Dict[str, str]] = None,
    **_,
) -> RoughnessEstimate:
    if data is None:
        raise ConfigurationError("The wind_profile method requires an observation series")
    if zr is None or is_missing(zr):
        raise ConfigurationError("The wind_profile method requires the sensor height zr")
    if is_missing(zh) or zh <= 0:
        raise ConfigurationError("The wind_profile method requires a positive canopy height zh")
    zh, zr = float(zh), float(zr)
    if zr <= zh:
        logger.warning("Sensor height zr=%s is not above canopy height zh=%s", zr, zh)

    columns = columns or {}
    required = ["wind", "ustar"]
    if psi_m is None and formulation is not StabilityFormulation.NO_STABILITY_CORRECTION:
        required += ["Tair", "pressure", "H"]
    obs = {
        name: as_float_array(get_column(data, columns.get(name, name)))
        for name in required
    }
    n_rows = len(obs["ustar"])
    if any(np.shape(v) != (n_rows,) for v in obs.values()):
        raise ConfigurationError("Input columns have unequal lengths")

    psi_fixed = None
    if psi_m is not None:
        try:
            psi_fixed = np.broadcast_to(as_float_array(psi_m), (n_rows,))
        except ValueError:
            raise ConfigurationError(
                f"psi_m must be a scalar or have one value per row ({n_rows})"
            ) from None
    elif formulation is StabilityFormulation.NO_STABILITY_CORRECTION:
        psi_fixed = np.zeros(n_rows)

    usable = np.isfinite(obs["wind"]) & (obs["ustar"] > 0)
    for name in ("Tair", "pressure", "H"):
        if name in obs:
            usable &= np.isfinite(obs[name])
    if psi_fixed is not None:
        usable &= np.isfinite(psi_fixed)
    if int(usable.sum()) < c.min_rows:
        raise InsufficientDataError(
            f"The wind_profile method needs at least {c.min_rows} valid rows, "
            f"got {int(usable.sum())}"
        )

    regression = _ProfileRegression(obs, zh, zr, formulation, psi_fixed, c)
    if d is not None:
        d = float(d)
    elif regression.depends_on_d:
        d = regression.search_d()
    else:
        d = c.frac_d * zh
        logger.debug(
            "psi_m does not depend on d; using d = %.2f * zh = %.4f m", c.frac_d, d
        )

    results = regression.fit(d)
    if results is None:
        raise InsufficientDataError(
            f"Fewer than {c.min_rows} rows give a valid roughness length at d={d:.4f} m"
        )
    z0m = float(np.exp(results.params[0]))
    z0m_se = z0m * float(results.bse[0])
    return RoughnessEstimate(d, z0m, z0m_se)


_ROUGHNESS_METHODS = {
    RoughnessMethod.CANOPY_HEIGHT: _from_canopy_height,
    RoughnessMethod.CANOPY_HEIGHT_LAI: _from_canopy_height_lai,
    RoughnessMethod.WIND_PROFILE: _from_wind_profile,
}


def roughness_parameters(
    method: Union[RoughnessMethod, str],
    zh,
    zr: Optional[float] = None,
    LAI=None,
    data=None,
    *,
    psi_m=None,
    d: Optional[float] = None,
    stab_formulation: Union[StabilityFormulation, str] = StabilityFormulation.DYER_1970,
    Tair: str = "Tair",
    pressure: str = "pressure",
    ustar: str = "ustar",
    H: str = "H",
    wind: str = "wind",
    constants: Optional[BigleafConstants] = None,
) -> RoughnessEstimate:
    """
    Estimate zero-plane displacement height and roughness length for
    momentum.

    Parameters
    ----------
    method : RoughnessMethod or str
        ``canopy_height``, ``canopy_height_LAI`` or ``wind_profile``.
    zh : float
        Canopy height (m).
    zr : float, optional
        Sensor height (m). Required by ``wind_profile``.
    LAI : float, optional
        Leaf area index (m² m⁻²). Used by ``canopy_height_LAI``; missing or
        non-positive values give missing ``d`` and ``z0m``.
    data : pandas.DataFrame or mapping, optional
        Observation series for ``wind_profile`` with wind speed (m s⁻¹),
        friction velocity (m s⁻¹) and, when psi_m is computed here, air
        temperature (°C), pressure (kPa) and sensible heat flux (W m⁻²).
    psi_m : float or array-like, optional
        Stability correction for momentum at ``zr`` per row. When omitted it
        is computed with *stab_formulation* for every trial displacement
        height.
    d : float, optional
        Displacement height (m) for ``wind_profile``. When omitted it is
        searched in ``(0, zh)``; if psi_m does not depend on d (supplied
        or ``no_stability_correction``) it is ``frac_d * zh``.
    stab_formulation : StabilityFormulation or str
        Stability correction used when psi_m is computed here.
    Tair, pressure, ustar, H, wind : str
        Column names in *data*.
    constants : BigleafConstants, optional

    Returns
    -------
    RoughnessEstimate
        ``(d, z0m, z0m_se)``. ``z0m_se`` is ``pandas.NA`` except for
        ``wind_profile``, where it is the standard error of the
        regression intercept propagated through the exponential.

    Raises
    ------
    ConfigurationError
        Unknown method or formulation, ``wind_profile`` without *data*,
        *zr* or a positive *zh*, or a missing required column.
    InsufficientDataError
        ``wind_profile`` with fewer than ``constants.min_rows`` valid rows.

    Notes
    -----
    ``canopy_height``:

    .. math:: d = 0.7 z_h, \\qquad z_{0m} = 0.1 z_h

    ``canopy_height_LAI`` with :math:`X = c_d \\, LAI`:

    .. math::
        d = 1.1 z_h \\ln(1 + X^{1/4}), \\qquad
        z_{0m} = \\begin{cases}
            h_s + 0.3 X^{1/2} & 0 \\le X \\le 0.2 \\\\
            0.3 z_h (1 - d / z_h) & X > 0.2
        \\end{cases}

    ``wind_profile`` inverts :math:`u = u_*/k \\, (\\ln((z_r - d)/z_{0m}) - \\psi_m)`
    row by row and fits :math:`\\ln z_{0m}` by least squares.

    Examples
    --------
    >>> rp = roughness_parameters("canopy_height", 26.5)
    >>> round(rp.d, 2), round(rp.z0m, 2), rp.z0m_se
    (18.55, 2.65, <NA>)
    >>> rp = roughness_parameters("canopy_height_LAI", 26.5, LAI=7.6)
    >>> round(rp.d, 2), round(rp.z0m, 3)
    (21.77, 1.419)
    """
    method = resolve_method(method)
    formulation = resolve_formulation(stab_formulation)
    c = constants or BigleafConstants()
    columns = {"Tair": Tair, "pressure": pressure, "ustar": ustar, "H": H, "wind": wind}

    return _ROUGHNESS_METHODS[method](
        zh,
        c,
        zr=zr,
        LAI=LAI,
        data=data,
        psi_m=psi_m,
        d=d,
        formulation=formulation,
        columns=columns,
    )
