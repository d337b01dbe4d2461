# bigleaf_flux/__init__.py
from . import boundary_layer
from . import constants
from . import exceptions
from . import main
from . import roughness
from . import utils
from . import wind

from .boundary_layer import (
    StabilityState,
    air_density,
    monin_obukhov_length,
    reynolds_number,
    stability_correction,
    stability_correction_functions,
    stability_parameter,
    stability_state,
)
from .constants import BigleafConstants, RoughnessMethod, StabilityFormulation
from .exceptions import BigleafError, ConfigurationError, InsufficientDataError
from .main import BigleafProcessor, SiteGeometry
from .roughness import RoughnessEstimate, roughness_parameters
from .utils import MISSING
from .wind import wind_profile, wind_speed

__version__ = "0.1.0"
