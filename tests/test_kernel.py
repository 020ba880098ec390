"""
Unit tests for the alpha=2 precision assembly.
"""

import math

import numpy as np
import pytest
import scipy.sparse as sp

from pygpgraph.graph import alpha2_constraint_basis, precision_pattern, stationary_edges
from pygpgraph.kernel import (
    compute_q_alpha2,
    edge_covariances,
    edge_precisions,
    matern32_covariance,
    precision_matrix,
)


def _matern_kappa(range_):
    return math.sqrt(12.0) / range_


class TestMaternCovariance:
    """Test the nu = 3/2 covariance and its derivatives."""

    def test_variance_is_inverse_tau_squared(self):
        assert matern32_covariance(0.0, kappa=2.0, tau=0.5) == pytest.approx(4.0)

    def test_derivatives_match_finite_differences(self):
        kappa, tau, h, eps = 1.3, 0.8, 0.7, 1e-6
        r = lambda x: float(matern32_covariance(x, kappa, tau, 0))
        d1 = float(matern32_covariance(h, kappa, tau, 1))
        d2 = float(matern32_covariance(h, kappa, tau, 2))
        assert d1 == pytest.approx((r(h + eps) - r(h - eps)) / (2 * eps), rel=1e-6)
        assert d2 == pytest.approx((r(h + eps) - 2 * r(h) + r(h - eps)) / eps ** 2, rel=1e-4)

    def test_first_derivative_vanishes_at_zero(self):
        assert matern32_covariance(0.0, 1.0, 1.0, 1) == 0.0

    def test_invalid_order_raises(self):
        with pytest.raises(ValueError):
            matern32_covariance(0.0, 1.0, 1.0, 3)


class TestEdgePrecisions:
    """Test the per-edge covariance and corrected precision blocks."""

    def test_edge_covariance_is_symmetric_positive_definite(self):
        R = edge_covariances([0.5, 1.0, 3.0], kappa=1.5, tau=1.0)
        assert R.shape == (3, 4, 4)
        for block in R:
            np.testing.assert_allclose(block, block.T)
            assert np.linalg.eigvalsh(block).min() > 0

    def test_fully_stationary_edge_is_exact_inverse(self):
        R = edge_covariances([2.0], kappa=1.1, tau=0.9)
        Q = edge_precisions([2.0], kappa=1.1, tau=0.9, lower_edges=[0], upper_edges=[0])
        np.testing.assert_allclose(Q[0], np.linalg.inv(R[0]), rtol=1e-10)

    def test_corrected_blocks_are_positive_definite(self):
        Q = edge_precisions([0.2, 1.0, 4.0], kappa=0.9, tau=1.0)
        for block in Q:
            assert np.linalg.eigvalsh(block).min() > 0


class TestPrecisionAssembly:
    """Test the graph-level precision and the value extraction."""

    def test_line_graph_reproduces_matern_covariance(self, line_graph):
        sigma, range_ = 1.7, 2.0
        kappa, tau = _matern_kappa(range_), 1.0 / sigma
        Tc = alpha2_constraint_basis(line_graph, "all")
        lower, upper = stationary_edges(line_graph, "all")
        Q = precision_matrix(Tc, line_graph.edge_lengths, kappa, tau, lower, upper)

        T = sp.csr_matrix(Tc).toarray()
        Sigma = T.T @ np.linalg.inv(Q.toarray()) @ T
        total = float(line_graph.edge_lengths.sum())

        # u at vertex 0 is x[0]; u at vertex 2 is x[6]
        assert Sigma[0, 0] == pytest.approx(sigma ** 2, rel=1e-8)
        assert Sigma[0, 6] == pytest.approx(float(matern32_covariance(total, kappa, tau, 0)), rel=1e-8)
        assert Sigma[1, 7] == pytest.approx(-float(matern32_covariance(total, kappa, tau, 2)), rel=1e-8)
        assert Sigma[0, 2] == pytest.approx(float(matern32_covariance(1.0, kappa, tau, 0)), rel=1e-8)

    def test_star_graph_precision_is_spd(self, star_graph):
        Tc = alpha2_constraint_basis(star_graph, "all")
        lower, upper = stationary_edges(star_graph, "all")
        Q = precision_matrix(Tc, star_graph.edge_lengths, 1.2, 0.7, lower, upper).toarray()
        np.testing.assert_allclose(Q, Q.T, atol=1e-10)
        assert np.linalg.eigvalsh(Q).min() > 0

    def test_neumann_endpoints_give_spd_precision(self, star_graph):
        Tc = alpha2_constraint_basis(star_graph, None)
        Q = precision_matrix(Tc, star_graph.edge_lengths, 1.2, 0.7).toarray()
        assert np.linalg.eigvalsh(Q).min() > 0

    def test_values_follow_pattern_order(self, star_graph, tolerance_config):
        Tc = alpha2_constraint_basis(star_graph, "all")
        lower, upper = stationary_edges(star_graph, "all")
        gi, gj = precision_pattern(Tc)
        values = compute_q_alpha2(Tc, 0.8, 1.3, star_graph.edge_lengths, gi, gj, lower, upper)
        Q = precision_matrix(Tc, star_graph.edge_lengths, 0.8, 1.3, lower, upper).toarray()
        np.testing.assert_allclose(values, Q[gi, gj], rtol=tolerance_config['rtol'])

        # reversed order gives reversed values
        rev = compute_q_alpha2(Tc, 0.8, 1.3, star_graph.edge_lengths, gi[::-1], gj[::-1], lower, upper)
        np.testing.assert_allclose(rev, values[::-1])

    def test_fills_output_buffer(self, line_graph):
        Tc = alpha2_constraint_basis(line_graph)
        gi, gj = precision_pattern(Tc)
        out = np.zeros(gi.size)
        ret = compute_q_alpha2(Tc, 1.0, 1.0, line_graph.edge_lengths, gi, gj, out=out)
        assert ret is out
        assert np.any(out != 0.0)

    def test_is_deterministic(self, line_graph):
        Tc = alpha2_constraint_basis(line_graph)
        gi, gj = precision_pattern(Tc)
        a = compute_q_alpha2(Tc, 1.4, 0.6, line_graph.edge_lengths, gi, gj)
        b = compute_q_alpha2(Tc, 1.4, 0.6, line_graph.edge_lengths, gi, gj)
        np.testing.assert_array_equal(a, b)

    def test_bad_buffer_raises(self, line_graph):
        Tc = alpha2_constraint_basis(line_graph)
        gi, gj = precision_pattern(Tc)
        with pytest.raises(ValueError, match="Output buffer"):
            compute_q_alpha2(Tc, 1.0, 1.0, line_graph.edge_lengths, gi, gj, out=np.zeros(gi.size + 1))

    def test_tc_column_mismatch_raises(self, line_graph):
        with pytest.raises(ValueError, match="columns"):
            precision_matrix(sp.identity(4, format="coo"), line_graph.edge_lengths, 1.0, 1.0)
