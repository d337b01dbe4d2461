"""
Table-level processing of half-hourly flux observations.

This module coordinates the stability, roughness and wind-profile
calculations for one site and returns them as columns alongside the
input observations.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import pandas as pd

from .boundary_layer import stability_correction
from .constants import BigleafConstants, resolve_formulation, resolve_method
from .roughness import RoughnessEstimate, roughness_parameters
from .utils import MISSING, is_missing
from .wind import wind_profile

logger = logging.getLogger(__name__)


@dataclass
class SiteGeometry:
    """
    Site description shared by every row of a series.

    ``Dl`` is not used by the stability, roughness or wind calculations;
    it is validated and carried as a site attribute, e.g. as the length
    scale of :func:`~bigleaf_flux.boundary_layer.reynolds_number` for a
    leaf-scale Reynolds number.
    """

    zh: float  # Canopy height (m)
    zr: float  # Sensor height (m)
    LAI: Optional[float] = None  # Leaf area index (m2/m2)
    Dl: Optional[float] = None  # Characteristic leaf dimension (m)

    def __post_init__(self):
        self._validate_params()

    def _validate_params(self) -> None:
        """
        Internal consistency checks for the site description.

        Raises
        ------
        ValueError
            If ``zh`` or ``zr`` is missing or not positive, or ``LAI`` /
            ``Dl`` are given but negative.
        """
        if is_missing(self.zh) or self.zh <= 0:
            raise ValueError("Canopy height zh must be positive")
        if is_missing(self.zr) or self.zr <= 0:
            raise ValueError("Sensor height zr must be positive")
        if not is_missing(self.LAI) and self.LAI < 0:
            raise ValueError("Leaf area index cannot be negative")
        if not is_missing(self.Dl) and self.Dl <= 0:
            raise ValueError("Leaf dimension Dl must be positive")
        if self.zr <= self.zh:
            logger.warning(
                "Sensor height zr=%s m is not above canopy height zh=%s m; "
                "profile results will not be physically meaningful",
                self.zr,
                self.zh,
            )


class BigleafProcessor:
    """
    Surface-layer processor for one flux-tower site.

    Parameters
    ----------
    config : dict
        Processing configuration with the keys

        ======================  =============================================
        Key                     Meaning
        ======================  =============================================
        ``zh``                  canopy height (m), required
        ``zr``                  sensor height (m), required
        ``LAI``                 leaf area index, optional
        ``Dl``                  leaf dimension (m), optional
        ``stab_formulation``    ``Dyer_1970`` (default), ``Businger_1971``
                                or ``no_stability_correction``
        ``roughness_method``    ``canopy_height`` (default),
                                ``canopy_height_LAI`` or ``wind_profile``
        ``heights``             heights (m) for wind speed columns
        ``columns``             mapping of variable name to column name
        ``constants``           mapping of constant overrides
        ======================  =============================================

    Examples
    --------
    >>> processor = BigleafProcessor({"zh": 26.5, "zr": 42.0, "heights": [30.0]})
    >>> out = processor.process(df)                 # doctest: +SKIP
    >>> list(out.columns[-4:])                      # doctest: +SKIP
    ['zeta', 'psi_h', 'psi_m', 'wind_30m']
    """

    def __init__(self, config: Dict[str, Any]):
        self.config = config
        self.initialize_parameters()

    def initialize_parameters(self) -> None:
        """Read site, formulation and constant settings from the configuration"""
        self.site = SiteGeometry(
            zh=self.config.get("zh"),
            zr=self.config.get("zr"),
            LAI=self.config.get("LAI"),
            Dl=self.config.get("Dl"),
        )

        self.stab_formulation = resolve_formulation(
            self.config.get("stab_formulation", "Dyer_1970")
        )
        self.roughness_method = resolve_method(
            self.config.get("roughness_method", "canopy_height")
        )
        self.heights = list(self.config.get("heights", []))

        self.columns = {
            "Tair": "Tair",
            "pressure": "pressure",
            "ustar": "ustar",
            "H": "H",
            "wind": "wind",
        }
        self.columns.update(self.config.get("columns", {}))

        self.constants = BigleafConstants().replace(**self.config.get("constants", {}))
        self.roughness: Optional[RoughnessEstimate] = None

    def estimate_roughness(self, df: pd.DataFrame) -> RoughnessEstimate:
        """Roughness parameters of the site with the configured method"""
        rp = roughness_parameters(
            self.roughness_method,
            self.site.zh,
            self.site.zr,
            LAI=self.site.LAI,
            data=df,
            stab_formulation=self.stab_formulation,
            constants=self.constants,
            **self.columns,
        )
        logger.info(
            "Roughness (%s): d=%s m, z0m=%s m, z0m_se=%s m",
            self.roughness_method.value,
            rp.d,
            rp.z0m,
            rp.z0m_se,
        )
        return rp

    def process(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Append stability and wind-profile columns to a copy of *df*.

        Steps:

        1. Roughness parameters with the configured method, stored on
           :attr:`roughness`.
        2. ``zeta``, ``psi_h`` and ``psi_m`` at sensor height.
        3. ``wind_<z>m`` for every configured height.

        The input frame is not modified.
        """
        self.roughness = self.estimate_roughness(df)
        d, z0m = self.roughness.d, self.roughness.z0m

        out = df.copy()
        if d is MISSING or z0m is MISSING:
            logger.warning(
                "Roughness parameters are missing; stability and wind columns are empty"
            )
            for name in ["zeta", "psi_h", "psi_m"] + [f"wind_{z:g}m" for z in self.heights]:
                out[name] = pd.Series(pd.NA, index=df.index, dtype="Float64")
            return out

        stab = stability_correction(
            df,
            self.site.zr,
            d,
            self.stab_formulation,
            Tair=self.columns["Tair"],
            pressure=self.columns["pressure"],
            ustar=self.columns["ustar"],
            H=self.columns["H"],
            constants=self.constants,
        )
        for name in stab.columns:
            out[name] = stab[name]

        for z in self.heights:
            wind_z = wind_profile(
                df,
                z,
                d,
                z0m,
                stab_formulation=self.stab_formulation,
                constants=self.constants,
                **self.columns,
            )
            out[wind_z.name] = wind_z

        logger.debug("Processed %d rows", len(out))
        return out
