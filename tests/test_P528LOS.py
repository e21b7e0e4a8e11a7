# -*- coding: utf-8 -*-
"""Tests for the line-of-sight loss engine."""
import dataclasses
import logging

import numpy as np
import pytest

from Py528LOS import P528LOS
from Py528LOS.P528LOS import (
    Const,
    DegenerateGeometryError,
    InvalidDistanceError,
    InvalidFrequencyError,
    InvalidHighTerminalHeightError,
    InvalidInputError,
    InvalidLowTerminalHeightError,
    InvalidPercentileError,
    InvalidTerminalGeometryError,
    P528Error,
    UnsupportedRegimeError,
)


def make_geometry(f_ghz, h_1_km, h_2_km, q, d_km):
    """Terminal geometry, path and ray table for one request"""
    env = P528LOS.DEFAULT_ENVIRONMENT
    request = P528LOS.PathRequest(f_mhz=f_ghz * 1000.0, h_1_km=h_1_km,
                                  h_2_km=h_2_km, q=q, d_km=d_km)
    terminal_1 = P528LOS.terminal_geometry(h_1_km, env)
    terminal_2 = P528LOS.terminal_geometry(h_2_km, env)
    path = P528LOS.Path()
    path.d_ML_km = terminal_1.d_r_km + terminal_2.d_r_km
    path = P528LOS.diffraction_anchors(path, terminal_1, terminal_2, request.f_mhz, env)
    table = P528LOS.build_los_table(request, terminal_1, terminal_2, path, env)
    return request, terminal_1, terminal_2, path, table


class TestRayTrace:

    def test_zero_height(self):
        assert P528LOS.ray_trace(0.0) == (0.0, 0.0)

    def test_horizon_grows_with_height(self):
        d_low, theta_low = P528LOS.ray_trace(0.1)
        d_high, theta_high = P528LOS.ray_trace(1.0)
        assert 0 < d_low < d_high
        assert 0 < theta_low < theta_high

    def test_above_top_layer(self):
        d_top, _ = P528LOS.ray_trace(475.0)
        d_above, theta_above = P528LOS.ray_trace(600.0)
        assert np.isfinite(d_above) and np.isfinite(theta_above)
        assert d_above > d_top

    def test_layer_boundary_height(self):
        """A height on a layer boundary matches its neighbours"""
        d_below, _ = P528LOS.ray_trace(0.305 - 1e-9)
        d_on, _ = P528LOS.ray_trace(0.305)
        assert d_on == pytest.approx(d_below, rel=1e-6)

    def test_refractivity_override(self):
        d_default, _ = P528LOS.ray_trace(1.0)
        d_329, _ = P528LOS.ray_trace(1.0, Const.N_S_VARIABILITY)
        assert d_329 > d_default


class TestTerminalGeometry:

    def test_arc_distance_monotonic(self):
        heights = np.concatenate(([0.0], np.geomspace(1e-3, 20.0, 60)))
        d_r = [P528LOS.terminal_geometry(h).d_r_km for h in heights]
        assert np.all(np.diff(d_r) >= 0)

    def test_ground_terminal(self):
        terminal = P528LOS.terminal_geometry(0.0)
        assert terminal.d_r_km == 0.0
        assert terminal.h_e_km == 0.0
        assert terminal.delta_h_km == 0.0

    def test_effective_height_not_above_real_height(self):
        for h in [0.01, 0.36, 1.0, 10.0]:
            terminal = P528LOS.terminal_geometry(h)
            assert terminal.h_e_km <= h
            assert terminal.delta_h_km >= 0


class TestSmoothEarthDiffraction:

    def test_height_function_branches_are_finite(self):
        for x in [10.0, 199.0, 200.0, 1000.0, 1999.0, 2000.0, 5000.0]:
            assert np.isfinite(P528LOS.height_function(x))

    def test_large_x_uses_distance_function(self):
        assert P528LOS.height_function(3000.0) == P528LOS.distance_function(3000.0)

    def test_loss_increases_with_distance(self):
        A_near = P528LOS.smooth_earth_diffraction(50.0, 80.0, 5000.0, 200.0)
        A_far = P528LOS.smooth_earth_diffraction(50.0, 80.0, 5000.0, 300.0)
        assert A_far > A_near

    def test_zero_horizon_distance(self):
        with pytest.raises(DegenerateGeometryError):
            P528LOS.smooth_earth_diffraction(0.0, 80.0, 5000.0, 200.0)

    def test_anchors(self):
        _, _, _, path, _ = make_geometry(5.0, 0.36, 0.50, 0.99, 60.0)
        assert path.M_d > 0
        assert path.A_dML_db == pytest.approx(path.M_d * path.d_ML_km + path.A_d0_db)
        assert path.M_d * path.d_d_km + path.A_d0_db == pytest.approx(0.0, abs=1e-9)


class TestReflectionCoefficients:

    def test_grazing_incidence(self):
        R_g, phi_g = P528LOS.reflection_coefficients(0.0, 5000.0)
        assert R_g == pytest.approx(1.0)
        assert abs(phi_g) == pytest.approx(np.pi, abs=1e-2)

    def test_magnitude_below_one(self):
        for psi in [0.01, 0.1, 0.5, 1.0, np.pi / 2]:
            R_g, phi_g = P528LOS.reflection_coefficients(psi, 5000.0)
            assert 0 < R_g < 1
            assert np.isfinite(phi_g)


class TestRayOptics:

    def test_distance_decreases_with_angle(self):
        request, terminal_1, terminal_2, _, _ = make_geometry(5.0, 0.36, 0.50, 0.99, 60.0)
        d = [P528LOS.ray_optics(request, terminal_1, terminal_2, psi).d_km
             for psi in [0.001, 0.01, 0.1, 0.5, 1.0]]
        assert np.all(np.diff(d) < 0)

    def test_vertical_ray(self):
        request, terminal_1, terminal_2, _, _ = make_geometry(5.0, 0.36, 0.50, 0.99, 60.0)
        params = P528LOS.ray_optics(request, terminal_1, terminal_2, np.pi / 2)
        assert params.d_km == pytest.approx(0.0, abs=1e-9)
        assert np.isfinite(params.delta_r_km)
        assert np.isfinite(params.r_0_km)


class TestPathLoss:

    @staticmethod
    def make_path():
        return P528LOS.Path(d_ML_km=100.0, d_0_km=80.0, A_d0_db=-2.0, A_dML_db=10.0)

    @pytest.mark.parametrize("d_km, A_LOS_db", [
        (80.0 + 1e-9, -2.0),
        (90.0, -6.0),
        (100.0, -10.0),
    ])
    def test_blend_towards_diffraction_line(self, d_km, A_LOS_db):
        """Past d_0 the loss runs linearly from A_d0 to -A_dML at d_ML"""
        params = P528LOS.LineOfSightParams(d_km=d_km, r_0_km=1.0, r_12_km=1.0)
        params, path = P528LOS.get_path_loss(0.2, self.make_path(), 5000.0, 0.0, params)

        assert params.A_LOS_db == pytest.approx(A_LOS_db, abs=1e-6)
        R_g, _ = P528LOS.reflection_coefficients(0.2, 5000.0)
        assert path.R_Tg == pytest.approx(R_g)

    def test_below_psi_limit(self):
        params = P528LOS.LineOfSightParams(d_km=50.0, r_0_km=1.0, r_12_km=1.0, delta_r_km=1e-5)
        params, path = P528LOS.get_path_loss(0.2, self.make_path(), 5000.0, 0.3, params)

        assert params.A_LOS_db == 0.0
        assert path.R_Tg > 0

    def test_two_ray_interference(self):
        params = P528LOS.LineOfSightParams(d_km=50.0, r_0_km=1.0, r_12_km=1.0, delta_r_km=1e-5)
        params, _ = P528LOS.get_path_loss(0.2, self.make_path(), 5000.0, 0.1, params)

        assert np.isfinite(params.A_LOS_db)
        assert -40.0 <= params.A_LOS_db <= 10.0 * np.log10(1.0 + 1e-4)


class TestLOSTable:

    def test_sorted_by_delta_r(self):
        _, _, _, _, table = make_geometry(5.0, 0.36, 0.50, 0.99, 60.0)
        assert len(table.delta_r_km) == 46
        assert np.all(np.diff(table.delta_r_km) >= 0)

    def test_interpolation_round_trip(self):
        """Midway between two entries the ray lands within that interval's width"""
        request, terminal_1, terminal_2, _, table = make_geometry(5.0, 0.36, 0.50, 0.99, 60.0)

        low, high = np.deg2rad(0.2), np.deg2rad(70.0)
        checked = 0
        for i in range(len(table.psi_rad) - 1):
            psi_a, psi_b = table.psi_rad[i], table.psi_rad[i + 1]
            dr_a, dr_b = table.delta_r_km[i], table.delta_r_km[i + 1]
            d_a, d_b = table.d_km[i], table.d_km[i + 1]
            if not (low <= psi_a < psi_b <= high and dr_a < dr_b and d_a > d_b):
                continue

            d_mid = P528LOS.find_distance_at_delta_r((dr_a + dr_b) / 2.0, table)
            psi = P528LOS.find_psi_at_distance(d_mid, table)
            params = P528LOS.ray_optics(request, terminal_1, terminal_2, psi)

            assert psi_a <= psi <= psi_b
            assert abs(params.d_km - d_mid) < d_a - d_b
            checked += 1

        assert checked > 10

    def test_distance_bracket(self):
        _, _, _, path, table = make_geometry(5.0, 0.36, 0.50, 0.99, 60.0)
        assert P528LOS.find_distance_bracket(path.d_ML_km + 1.0, table) == 0

        i = P528LOS.find_distance_bracket(60.0, table)
        assert table.d_km[i] <= 60.0 < table.d_km[i - 1]

    def test_clamping(self):
        _, _, _, path, table = make_geometry(5.0, 0.36, 0.50, 0.99, 60.0)
        assert P528LOS.find_distance_at_delta_r(-1.0, table) == table.d_km[0]
        assert P528LOS.find_distance_at_delta_r(1e6, table) == table.d_km[-1]
        assert P528LOS.find_psi_at_distance(path.d_ML_km + 10.0, table) == table.psi_rad[0]

    def test_ground_low_terminal(self):
        env = P528LOS.DEFAULT_ENVIRONMENT
        request = P528LOS.PathRequest(f_mhz=5000.0, h_1_km=0.0, h_2_km=0.5, q=0.5, d_km=10.0)
        terminal_1 = P528LOS.terminal_geometry(0.0, env)
        terminal_2 = P528LOS.terminal_geometry(0.5, env)
        path = P528LOS.Path(d_ML_km=terminal_2.d_r_km)
        with pytest.raises(DegenerateGeometryError):
            P528LOS.build_los_table(request, terminal_1, terminal_2, path, env)


class TestDistanceSearch:

    def test_converges_at_short_range(self):
        request, terminal_1, terminal_2, _, table = make_geometry(5.0, 0.30, 0.50, 0.99, 1.0)
        psi, params, converged, iterations = P528LOS.find_psi_for_distance(
            request, terminal_1, terminal_2, table)
        assert converged
        assert iterations <= Const.LOS_ITERATIONS
        assert abs(params.d_km - 1.0) <= Const.LOS_TOLERANCE_KM
        assert 0 < psi < np.pi / 2

    def test_iteration_cap(self):
        for d_km in [0.5, 1.0, 10.0, 60.0, 150.0]:
            result = P528LOS.bt_loss(5.0, 0.36, 0.50, 0.99, d_km)
            assert result.iterations <= Const.LOS_ITERATIONS
            assert result.converged == (abs(result.d_km - d_km) <= Const.LOS_TOLERANCE_KM)

    @pytest.mark.parametrize("f_ghz, h_1_km, h_2_km", [
        (5.0, 0.36, 0.50),
        (0.2, 0.01, 1.0),
    ])
    def test_converges_over_interior_distances(self, f_ghz, h_1_km, h_2_km):
        request, terminal_1, terminal_2, path, table = make_geometry(f_ghz, h_1_km, h_2_km, 0.5, 1.0)

        for fraction in np.linspace(0.05, 0.95, 19):
            d_km = fraction * path.d_ML_km
            request = dataclasses.replace(request, d_km=d_km)
            _, params, converged, iterations = P528LOS.find_psi_for_distance(
                request, terminal_1, terminal_2, table)

            assert converged, "d = %g km" % d_km
            assert iterations <= Const.LOS_ITERATIONS
            assert abs(params.d_km - d_km) <= Const.LOS_TOLERANCE_KM

    def test_initial_step_within_bracket(self):
        _, _, _, _, table = make_geometry(5.0, 0.36, 0.50, 0.99, 60.0)

        i = P528LOS.find_distance_bracket(60.0, table)
        width = abs(table.psi_rad[i] - table.psi_rad[i - 1])
        step = P528LOS.initial_psi_step(60.0, -0.5, table)
        assert 0 < step <= width

        assert P528LOS.initial_psi_step(1e6, -0.5, table) == Const.LOS_DELTA_PSI

    def test_non_convergence_is_logged(self, monkeypatch, caplog):
        monkeypatch.setattr(Const, "LOS_ITERATIONS", 0)
        request, terminal_1, terminal_2, _, table = make_geometry(5.0, 0.30, 0.50, 0.99, 1.0)

        with caplog.at_level(logging.WARNING, logger=P528LOS.__name__):
            _, params, converged, iterations = P528LOS.find_psi_for_distance(
                request, terminal_1, terminal_2, table)

        assert iterations == 0
        assert not converged
        assert abs(params.d_km - 1.0) > Const.LOS_TOLERANCE_KM
        assert "Distance search stopped" in caplog.text


class TestAbsorption:

    def test_tabulated_frequency(self):
        gamma_oo, gamma_ow = P528LOS.absorption_rates(1000.0)
        assert gamma_oo == pytest.approx(0.0042)
        assert gamma_ow == 0.0

    def test_water_vapour_above_3400(self):
        _, gamma_ow_below = P528LOS.absorption_rates(3399.0)
        _, gamma_ow_above = P528LOS.absorption_rates(3400.0)
        assert gamma_ow_below == 0.0
        assert gamma_ow_above == pytest.approx(0.0001)

    def test_top_of_table(self):
        gamma_oo, gamma_ow = P528LOS.absorption_rates(17000.0)
        assert gamma_oo == pytest.approx(0.018)
        assert gamma_ow == pytest.approx(0.045)

        gamma_oo, gamma_ow = P528LOS.absorption_rates(20000.0)
        assert gamma_oo > 0.018
        assert gamma_ow > 0.045

    def test_ray_inside_layer(self):
        params = P528LOS.LineOfSightParams(a_a_km=8000.0, r_0_km=2.0)
        params.z_km = np.array([8000.1, 8000.5])
        assert P528LOS.effective_ray_length(3.25, params) == 2.0

    def test_ray_above_layer(self):
        params = P528LOS.LineOfSightParams(a_a_km=8000.0, r_0_km=2.0, theta_h1_rad=0.0)
        params.z_km = np.array([8010.0, 8020.0])
        assert P528LOS.effective_ray_length(3.25, params) == 0.0

    def test_ray_leaving_layer(self):
        """Low terminal inside the layer, high terminal above it"""
        theta = 0.1
        z_1, z_t = 8000.1, 8000.0 + 3.25
        params = P528LOS.LineOfSightParams(a_a_km=8000.0, r_0_km=50.0, theta_h1_rad=theta)
        params.z_km = np.array([z_1, 8010.0])

        expected = -z_1 * np.sin(theta) + np.sqrt(z_t**2 - (z_1 * np.cos(theta))**2)
        assert P528LOS.effective_ray_length(3.25, params) == pytest.approx(expected, rel=1e-6)


class TestVariability:

    def test_inverse_ccdf(self):
        assert P528LOS.inverse_complementary_cumulative_distribution_function(0.5) == pytest.approx(0.0, abs=1e-3)
        assert P528LOS.inverse_complementary_cumulative_distribution_function(0.1) == pytest.approx(1.2816, abs=1e-3)
        assert P528LOS.inverse_complementary_cumulative_distribution_function(0.9) == pytest.approx(-1.2816, abs=1e-3)

    def test_combine_at_median(self):
        assert P528LOS.combine_distributions(3.0, 3.0, 0.0, 0.0, 0.5) == 3.0

    def test_combine_sign(self):
        assert P528LOS.combine_distributions(1.0, 4.0, 0.0, 4.0, 0.1) == pytest.approx(6.0)
        assert P528LOS.combine_distributions(1.0, -2.0, 0.0, -4.0, 0.9) == pytest.approx(-4.0)

    def test_nakagami_rice_median(self):
        for K in [-40.0, -7.0, 0.0, 20.0]:
            assert P528LOS.nakagami_rice(K, 0.5) == 0.0

    def test_nakagami_rice_table_points(self):
        assert P528LOS.nakagami_rice(-40.0, 0.99) == pytest.approx(0.1441)
        assert P528LOS.nakagami_rice(20.0, 0.01) == pytest.approx(-8.2238)
        assert P528LOS.nakagami_rice(50.0, 0.99) == pytest.approx(18.3864)

    def test_find_k(self):
        assert P528LOS.find_k_for_ypi_at_99_percent(2.5931) == pytest.approx(-16.0)
        assert P528LOS.find_k_for_ypi_at_99_percent(0.0) == -40.0
        assert P528LOS.find_k_for_ypi_at_99_percent(30.0) == 20.0

    def test_long_term_median(self):
        terminal_1 = P528LOS.terminal_geometry(0.36)
        terminal_2 = P528LOS.terminal_geometry(0.50)
        Y_50, _ = P528LOS.long_term_variability(terminal_1, terminal_2, 60.0, 5000.0,
                                                 0.5, 1.0, 0.0)
        Y_99, _ = P528LOS.long_term_variability(terminal_1, terminal_2, 60.0, 5000.0,
                                                 0.99, 1.0, 0.0)
        Y_01, _ = P528LOS.long_term_variability(terminal_1, terminal_2, 60.0, 5000.0,
                                                 0.01, 1.0, 0.0)
        assert Y_99 < Y_50 < Y_01

    @pytest.mark.parametrize("q, limit_db", [
        (0.01, 5.0),
        (0.015, 4.75),
        (0.05, 3.7),
    ])
    def test_free_space_excess_limit(self, q, limit_db):
        """Below q = 0.10 the variability is capped by the interpolated c_Y"""
        terminal_1 = P528LOS.terminal_geometry(0.36)
        terminal_2 = P528LOS.terminal_geometry(0.50)
        Y_e, _ = P528LOS.long_term_variability(terminal_1, terminal_2, 200.0, 5000.0,
                                               q, 1.0, 0.0)
        assert Y_e == pytest.approx(limit_db)


class TestBtLoss:

    def test_line_of_sight_scenario(self):
        result = P528LOS.bt_loss(5.0, 0.36, 0.50, 0.99, 60.0)
        assert result.propagation_mode == Const.PROP_MODE__LOS
        assert np.isfinite(result.A_db)
        assert result.A_db == pytest.approx(result.A_fs_db + result.A_a_db +
                                            result.A_los_db + result.A_y_db)
        assert result.A_fs_db > 0
        assert result.A_a_db >= 0

    def test_free_space_loss(self):
        result = P528LOS.bt_loss(1.0, 0.30, 0.50, 0.5, 1.0)
        r_0 = np.hypot(result.d_km, 0.2)
        assert result.A_fs_db == pytest.approx(20 * np.log10(r_0) + 20 * np.log10(1000.0) + 32.45,
                                               abs=0.1)

    def test_degenerate_geometry(self):
        with pytest.raises(DegenerateGeometryError):
            P528LOS.bt_loss(5.0, 0.0, 0.0, 0.5, 0.0)

    def test_transhorizon(self):
        with pytest.raises(UnsupportedRegimeError) as excinfo:
            P528LOS.bt_loss(5.0, 0.36, 0.50, 0.99, 500.0)
        assert isinstance(excinfo.value, NotImplementedError)
        assert excinfo.value.rtn == Const.ERROR_UNSUPPORTED_REGIME

    @pytest.mark.parametrize("args, error, rtn", [
        ((5.0, 0.36, 0.50, 0.99, -1.0), InvalidDistanceError, Const.ERROR_VALIDATION__D_KM),
        ((5.0, -0.1, 0.50, 0.99, 10.0), InvalidLowTerminalHeightError, Const.ERROR_VALIDATION__H_1),
        ((5.0, 0.36, np.inf, 0.99, 10.0), InvalidHighTerminalHeightError, Const.ERROR_VALIDATION__H_2),
        ((5.0, 0.60, 0.50, 0.99, 10.0), InvalidTerminalGeometryError, Const.ERROR_VALIDATION__TERM_GEO),
        ((0.0, 0.36, 0.50, 0.99, 10.0), InvalidFrequencyError, Const.ERROR_VALIDATION__F_GHZ),
        ((5.0, 0.36, 0.50, 0.0, 10.0), InvalidPercentileError, Const.ERROR_VALIDATION__PERCENTILE),
        ((5.0, 0.36, 0.50, 1.0, 10.0), InvalidPercentileError, Const.ERROR_VALIDATION__PERCENTILE),
        ((5.0, 0.36, 0.50, np.nan, 10.0), InvalidPercentileError, Const.ERROR_VALIDATION__PERCENTILE),
    ])
    def test_invalid_input(self, args, error, rtn):
        with pytest.raises(InvalidInputError) as excinfo:
            P528LOS.bt_loss(*args)
        assert type(excinfo.value) is error
        assert excinfo.value.rtn == rtn
        assert "rtn" not in vars(excinfo.value)
        assert isinstance(excinfo.value, ValueError)

    def test_compute_line_of_sight_loss_alias(self):
        assert P528LOS.compute_line_of_sight_loss is P528LOS.bt_loss
        result = P528LOS.compute_line_of_sight_loss(5.0, 0.36, 0.50, 0.99, 60.0)
        assert result == P528LOS.bt_loss(5.0, 0.36, 0.50, 0.99, 60.0)

    def test_errors_share_base_class(self):
        for cls in (InvalidInputError, DegenerateGeometryError, UnsupportedRegimeError):
            assert issubclass(cls, P528Error)

    def test_median_variability(self):
        """At q = 0.5 only the median long-term term remains"""
        result = P528LOS.bt_loss(5.0, 0.36, 0.50, 0.5, 60.0)
        terminal_1 = P528LOS.terminal_geometry(0.36)
        terminal_2 = P528LOS.terminal_geometry(0.50)
        theta_h1 = result.theta_h1_rad
        if theta_h1 <= 0.0:
            f_theta_h = 1.0
        elif theta_h1 >= 1.0:
            f_theta_h = 0.0
        else:
            f_theta_h = max(0.5 - (1 / np.pi) * np.arctan(20.0 * np.log10(32.0 * theta_h1)), 0)
        Y_e_50, _ = P528LOS.long_term_variability(terminal_1, terminal_2, 60.0, 5000.0,
                                                   0.5, f_theta_h, -result.A_los_db)
        assert result.A_y_db == pytest.approx(-Y_e_50)

    @pytest.mark.parametrize("f_ghz", [1.6, 3.4])
    def test_continuous_in_frequency(self, f_ghz):
        df = 1e-7
        A_below = P528LOS.bt_loss(f_ghz - df, 0.30, 0.50, 0.99, 1.0).A_db
        A_on = P528LOS.bt_loss(f_ghz, 0.30, 0.50, 0.99, 1.0).A_db
        A_above = P528LOS.bt_loss(f_ghz + df, 0.30, 0.50, 0.99, 1.0).A_db
        assert abs(A_on - A_below) < 0.5
        assert abs(A_above - A_on) < 0.5

    def test_finite_over_frequency_range(self):
        for f_ghz in np.geomspace(0.1, 20.0, 12):
            result = P528LOS.bt_loss(f_ghz, 0.30, 0.50, 0.99, 1.0)
            assert np.isfinite(result.A_db)

    def test_custom_environment(self):
        env = P528LOS.Environment(epsilon_r=80.0, sigma=5.0)
        result = P528LOS.bt_loss(5.0, 0.36, 0.50, 0.5, 20.0, env)
        assert np.isfinite(result.A_db)
