import pytest
import numpy as np
import pandas as pd

from bigleaf_flux.boundary_layer import (
    StabilityState,
    air_density,
    monin_obukhov_length,
    reynolds_number,
    stability_correction,
    stability_correction_functions,
    stability_parameter,
    stability_state,
)
from bigleaf_flux.constants import BigleafConstants, StabilityFormulation
from bigleaf_flux.exceptions import ConfigurationError

from conftest import D_TRUE, ZR

# Test Data Constants
STANDARD_TAIR = 20.0  # °C
STANDARD_PRESSURE = 100.0  # kPa
STANDARD_USTAR = 0.5  # m/s


class TestAirDensity:
    """Tests for the ideal-gas air density"""

    def test_standard_conditions(self):
        rho = air_density(25.0, 100.0)
        assert rho == pytest.approx(100000.0 / (287.0586 * 298.15))

    def test_density_decreases_with_temperature(self):
        rho = air_density(np.array([0.0, 20.0, 40.0]), 101.325)
        values = rho.to_numpy(dtype=float)
        assert values[0] > values[1] > values[2]


class TestReynoldsNumber:
    """Tests for the roughness Reynolds number"""

    def test_reference_value(self):
        """Reference case: Tair=25 °C, p=100 kPa, u*=0.5 m/s, z0m=0.5 m"""
        assert reynolds_number(25.0, 100.0, 0.5, 0.5) == pytest.approx(15870, rel=1e-3)

    def test_proportional_to_roughness(self):
        re1 = reynolds_number(25.0, 100.0, 0.5, 0.5)
        re2 = reynolds_number(25.0, 100.0, 0.5, 1.0)
        assert re2 == pytest.approx(2 * re1)

    def test_missing_input(self):
        assert reynolds_number(25.0, None, 0.5, 0.5) is pd.NA


class TestMoninObukhovLength:
    """Tests for the Monin-Obukhov length"""

    def test_sign_follows_heat_flux(self):
        unstable = monin_obukhov_length(STANDARD_TAIR, STANDARD_PRESSURE, STANDARD_USTAR, 200.0)
        stable = monin_obukhov_length(STANDARD_TAIR, STANDARD_PRESSURE, STANDARD_USTAR, -50.0)
        assert unstable < 0
        assert stable > 0

    def test_formula(self):
        c = BigleafConstants()
        T = STANDARD_TAIR + c.Kelvin
        rho = STANDARD_PRESSURE * 1000.0 / (c.Rd * T)
        expected = -rho * c.cp * STANDARD_USTAR**3 * T / (c.k * c.g * 100.0)
        L = monin_obukhov_length(STANDARD_TAIR, STANDARD_PRESSURE, STANDARD_USTAR, 100.0)
        assert L == pytest.approx(expected)

    @pytest.mark.parametrize("ustar", [0.0, -0.1, np.nan, None])
    def test_invalid_friction_velocity(self, ustar):
        assert monin_obukhov_length(STANDARD_TAIR, STANDARD_PRESSURE, ustar, 100.0) is pd.NA


class TestStabilityCorrectionFunctions:
    """Tests for the integrated stability correction functions"""

    def test_dyer_stable_branch(self):
        psi_h, psi_m = stability_correction_functions(0.5, "Dyer_1970")
        assert psi_h == pytest.approx(-2.5)
        assert psi_m == pytest.approx(-2.5)

    def test_dyer_unstable_branch(self):
        """zeta=-0.5 gives y_m = sqrt(3) and y_h = 3"""
        psi_h, psi_m = stability_correction_functions(-0.5, StabilityFormulation.DYER_1970)
        y = np.sqrt(3.0)
        expected_m = (
            2 * np.log((1 + y) / 2) + np.log((1 + y**2) / 2) - 2 * np.arctan(y) + np.pi / 2
        )
        assert psi_m == pytest.approx(expected_m)
        assert psi_m == pytest.approx(0.7933591, rel=1e-6)
        assert psi_h == pytest.approx(2 * np.log(2.0))

    def test_businger_stable_branch(self):
        psi_h, psi_m = stability_correction_functions(0.2, "Businger_1971")
        assert psi_h == pytest.approx(-7.8 * 0.2)
        assert psi_m == pytest.approx(-6.0 * 0.2)

    @pytest.mark.parametrize("formulation", ["Dyer_1970", "Businger_1971"])
    def test_psi_m_continuous_at_neutral(self, formulation):
        zeta = [-1e-9, 0.0, 1e-9]
        _, psi_m = stability_correction_functions(zeta, formulation)
        np.testing.assert_allclose(psi_m.to_numpy(dtype=float), 0.0, atol=1e-6)

    def test_neutral_uses_unstable_branch(self):
        psi_h, psi_m = stability_correction_functions(0.0, "Dyer_1970")
        assert psi_h == pytest.approx(0.0, abs=1e-12)
        assert psi_m == pytest.approx(0.0, abs=1e-12)

    def test_no_correction_returns_zeros(self):
        psi_h, psi_m = stability_correction_functions([-2.0, 0.0, 1.5], "no_stability_correction")
        assert (psi_h == 0).all()
        assert (psi_m == 0).all()

    def test_unstable_correction_positive(self):
        """Unstable stratification reduces the wind speed: psi_m > 0"""
        _, psi_m = stability_correction_functions(np.linspace(-2.0, -0.01, 20), "Dyer_1970")
        assert (psi_m.to_numpy(dtype=float) > 0).all()

    def test_missing_zeta(self):
        psi_h, psi_m = stability_correction_functions([np.nan, -0.1], "Dyer_1970")
        assert psi_m.isna().tolist() == [True, False]
        assert psi_h.isna().tolist() == [True, False]

    def test_unknown_formulation(self):
        with pytest.raises(ConfigurationError, match="Unknown stability formulation"):
            stability_correction_functions(0.1, "Monin_1954")

    def test_coefficient_override(self):
        c = BigleafConstants().replace(dyer_stable=-4.7)
        _, psi_m = stability_correction_functions(1.0, "Dyer_1970", constants=c)
        assert psi_m == pytest.approx(-4.7)


class TestStabilityState:
    """Tests for per-observation stability correction"""

    def test_returns_named_fields(self):
        state = stability_state(STANDARD_TAIR, STANDARD_PRESSURE, STANDARD_USTAR, -50.0, ZR, D_TRUE)
        assert isinstance(state, StabilityState)
        assert state._fields == ("zeta", "psi_h", "psi_m")
        assert state.zeta > 0
        assert state.psi_m == pytest.approx(-5.0 * state.zeta)

    def test_zeta_matches_stability_parameter(self):
        state = stability_state(STANDARD_TAIR, STANDARD_PRESSURE, STANDARD_USTAR, 150.0, ZR, D_TRUE)
        zeta = stability_parameter(STANDARD_TAIR, STANDARD_PRESSURE, STANDARD_USTAR, 150.0, ZR, D_TRUE)
        assert state.zeta == pytest.approx(zeta)
        L = monin_obukhov_length(STANDARD_TAIR, STANDARD_PRESSURE, STANDARD_USTAR, 150.0)
        assert zeta == pytest.approx((ZR - D_TRUE) / L)

    @pytest.mark.parametrize("ustar", [0.0, -0.2, np.nan, None, pd.NA])
    def test_missing_for_invalid_ustar(self, ustar):
        state = stability_state(STANDARD_TAIR, STANDARD_PRESSURE, ustar, 100.0, ZR, D_TRUE)
        assert state.zeta is pd.NA
        assert state.psi_m is pd.NA
        assert state.psi_h is pd.NA

    def test_zero_heat_flux_is_neutral(self):
        state = stability_state(STANDARD_TAIR, STANDARD_PRESSURE, STANDARD_USTAR, 0.0, ZR, D_TRUE)
        assert state.zeta == 0.0
        assert state.psi_m == pytest.approx(0.0, abs=1e-12)

    @pytest.mark.parametrize("H", [-80.0, 0.0, 35.0, 400.0])
    def test_no_correction_always_zero(self, H):
        state = stability_state(
            STANDARD_TAIR, STANDARD_PRESSURE, STANDARD_USTAR, H, ZR, D_TRUE,
            "no_stability_correction",
        )
        assert state == (0.0, 0.0, 0.0)

    def test_series_input_keeps_length_and_index(self):
        index = pd.date_range("2024-06-15", periods=4, freq="30min")
        ustar = pd.Series([0.4, np.nan, 0.0, 0.6], index=index)
        state = stability_state(STANDARD_TAIR, STANDARD_PRESSURE, ustar, 120.0, ZR, D_TRUE)
        assert len(state.psi_m) == 4
        assert state.psi_m.index.equals(index)
        assert state.psi_m.isna().tolist() == [False, True, True, False]

    def test_unequal_lengths(self):
        with pytest.raises(ConfigurationError):
            stability_state([20.0, 21.0], STANDARD_PRESSURE, [0.3, 0.4, 0.5], 100.0, ZR, D_TRUE)


class TestStabilityCorrection:
    """Tests for the table form of the stability correction"""

    def test_columns_and_index(self, flux_series):
        result = stability_correction(flux_series, ZR, D_TRUE)
        assert list(result.columns) == ["zeta", "psi_h", "psi_m"]
        assert result.index.equals(flux_series.index)
        assert not result.isna().any().any()

    def test_input_not_modified(self, flux_series):
        before = flux_series.copy()
        stability_correction(flux_series, ZR, D_TRUE)
        pd.testing.assert_frame_equal(flux_series, before)

    def test_missing_rows_propagate(self, flux_series_with_gaps):
        result = stability_correction(flux_series_with_gaps, ZR, D_TRUE)
        missing = result["psi_m"].isna()
        assert missing.sum() == 3
        assert missing.iloc[[3, 10, 20]].all()
        assert result["zeta"].isna().equals(missing)

    def test_stable_nights_unstable_days(self, flux_series):
        result = stability_correction(flux_series, ZR, D_TRUE)
        zeta = result["zeta"].to_numpy(dtype=float)
        H = flux_series["H"].to_numpy()
        assert (zeta[H < 0] > 0).all()
        assert (zeta[H > 0] < 0).all()

    def test_custom_column_names(self, flux_series):
        renamed = flux_series.rename(columns={"Tair": "TA", "ustar": "USTAR"})
        result = stability_correction(renamed, ZR, D_TRUE, Tair="TA", ustar="USTAR")
        expected = stability_correction(flux_series, ZR, D_TRUE)
        pd.testing.assert_frame_equal(result, expected)

    def test_missing_column(self, flux_series):
        with pytest.raises(ConfigurationError, match="'H'"):
            stability_correction(flux_series.drop(columns="H"), ZR, D_TRUE)

    def test_mapping_input(self):
        data = {
            "Tair": [18.0, 19.0],
            "pressure": [99.0, 99.0],
            "ustar": [0.4, None],
            "H": [-20.0, 100.0],
        }
        result = stability_correction(data, ZR, D_TRUE, "Businger_1971")
        assert len(result) == 2
        assert result["psi_m"].isna().tolist() == [False, True]

    def test_no_correction_table(self, flux_series_with_gaps):
        result = stability_correction(
            flux_series_with_gaps, ZR, D_TRUE, StabilityFormulation.NO_STABILITY_CORRECTION
        )
        assert (result == 0).all().all()
