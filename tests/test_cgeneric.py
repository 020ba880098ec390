"""
Integration tests for the command interface.
"""

import math
from unittest.mock import Mock

import numpy as np
import pytest

import pygpgraph
from pygpgraph.bundle import Record
from pygpgraph.cgeneric import (
    Command,
    GPGraphAlpha2Model,
    GraphResult,
    InitialResult,
    LogPriorResult,
    MeanResult,
    PrecisionResult,
    _as_command,
    cgeneric_call,
    gpgraph_alpha2_model,
)
from pygpgraph.config import extract_alpha2_data
from pygpgraph.exceptions import CommandError, ConfigurationError


class TestCommands:
    """Test each command branch."""

    def test_graph_echoes_pattern(self, star_bundle):
        data = extract_alpha2_data(star_bundle)
        ret = gpgraph_alpha2_model(Command.GRAPH, None, star_bundle)
        assert isinstance(ret, GraphResult)
        arr = ret.to_array()
        M = data.M
        assert arr.size == 2 + 2 * M
        assert arr[0] == data.n
        assert arr[1] == M
        np.testing.assert_array_equal(arr[2:2 + M], data.graph_i)
        np.testing.assert_array_equal(arr[2 + M:], data.graph_j)

    def test_q_layout(self, star_bundle):
        data = extract_alpha2_data(star_bundle)
        arr = cgeneric_call(Command.Q, [0.0, 0.0], star_bundle)
        assert arr.size == 2 + data.M
        assert arr[0] == -1
        assert arr[1] == data.M
        assert np.all(np.isfinite(arr[2:]))

    def test_q_values_match_full_precision(self, star_bundle):
        model = GPGraphAlpha2Model(star_bundle)
        theta = [0.4, -0.2]
        ret = model(Command.Q, theta)
        assert isinstance(ret, PrecisionResult)
        Q = model.precision(theta).toarray()
        d = model.data
        np.testing.assert_allclose(ret.values, Q[d.graph_i, d.graph_j], rtol=1e-10)
        assert np.linalg.eigvalsh(Q).min() > 0

    def test_q_is_idempotent(self, star_bundle):
        model = GPGraphAlpha2Model(star_bundle)
        a = model(Command.Q, [0.1, 0.3]).to_array()
        b = model(Command.Q, [0.1, 0.3]).to_array()
        np.testing.assert_array_equal(a, b)

    def test_mu_is_zero(self, star_bundle):
        ret = gpgraph_alpha2_model(Command.MU, None, star_bundle)
        assert isinstance(ret, MeanResult)
        np.testing.assert_array_equal(ret.to_array(), [0.0])

    @pytest.mark.parametrize("theta", [None, [5.0, -3.0]])
    def test_initial_ignores_theta(self, star_bundle, theta):
        data = extract_alpha2_data(star_bundle)
        ret = gpgraph_alpha2_model(Command.INITIAL, theta, star_bundle)
        assert isinstance(ret, InitialResult)
        np.testing.assert_array_equal(ret.to_array(), [2.0, data.start_lsigma, data.start_theta])
        np.testing.assert_array_equal(ret.initial, [data.start_lsigma, data.start_theta])

    def test_log_prior_standard_normal(self, star_bundle):
        ret = gpgraph_alpha2_model(Command.LOG_PRIOR, [0.0, 0.0], star_bundle)
        assert isinstance(ret, LogPriorResult)
        assert ret.value == pytest.approx(2 * (-0.5 * math.log(2 * math.pi)))
        np.testing.assert_array_equal(ret.to_array(), [ret.value])

    def test_log_prior_uses_theta1_not_lkappa(self, star_bundle):
        theta = [0.3, 1.1]
        ret = gpgraph_alpha2_model(Command.LOG_PRIOR, theta, star_bundle)
        expected = (
            -0.5 * 1.1 ** 2 - 0.5 * math.log(2 * math.pi)
            - 0.5 * 0.3 ** 2 - 0.5 * math.log(2 * math.pi)
        )
        assert ret.value == pytest.approx(expected, rel=1e-12)

    def test_log_prior_is_bit_identical(self, star_bundle):
        a = cgeneric_call(Command.LOG_PRIOR, [0.25, -0.6], star_bundle)
        b = cgeneric_call(Command.LOG_PRIOR, [0.25, -0.6], star_bundle)
        assert a.tobytes() == b.tobytes()

    @pytest.mark.parametrize("cmd", [Command.LOG_NORM_CONST, Command.QUIT, 99, "quit"])
    def test_no_allocation_commands(self, star_bundle, cmd):
        assert gpgraph_alpha2_model(cmd, [0.0, 0.0], star_bundle) is None
        assert cgeneric_call(cmd, None, star_bundle) is None

    def test_void_raises(self, star_bundle):
        with pytest.raises(CommandError, match="VOID"):
            gpgraph_alpha2_model(Command.VOID, None, star_bundle)

    @pytest.mark.parametrize("cmd", [Command.Q, Command.LOG_PRIOR])
    def test_theta_required(self, star_bundle, cmd):
        with pytest.raises(CommandError, match="theta"):
            gpgraph_alpha2_model(cmd, None, star_bundle)

    @pytest.mark.parametrize("cmd", ["graph", "INLA_CGENERIC_GRAPH", 2, np.int32(2)])
    def test_command_aliases(self, star_bundle, cmd):
        assert isinstance(gpgraph_alpha2_model(cmd, None, star_bundle), GraphResult)

    @pytest.mark.parametrize("cmd", [1.7, 2.0, None, "nonsense"])
    def test_non_integral_commands_are_unknown(self, star_bundle, cmd):
        assert _as_command(cmd) is None
        assert gpgraph_alpha2_model(cmd, [0.0, 0.0], star_bundle) is None

    def test_precision_requires_theta(self, star_bundle):
        with pytest.raises(CommandError, match="theta"):
            GPGraphAlpha2Model(star_bundle).precision(None)


class TestDispatchContract:
    """Test setup ordering, kernel pluggability and the module entry point."""

    def test_schema_violation_fails_before_kernel(self, star_bundle):
        kernel = Mock()
        star_bundle.ints[0] = Record("size", star_bundle.ints[0].value)
        with pytest.raises(ConfigurationError):
            gpgraph_alpha2_model(Command.Q, [0.0, 0.0], star_bundle, kernel=kernel)
        kernel.assert_not_called()

    def test_custom_kernel(self, star_bundle):
        data = extract_alpha2_data(star_bundle)

        def kernel(d, hyper, out):
            out[:] = hyper.kappa
            return out

        ret = gpgraph_alpha2_model(Command.Q, [0.0, 0.0], data, kernel=kernel)
        np.testing.assert_allclose(ret.values, math.sqrt(12.0))
        assert ret.nonzero_count == data.M

    def test_kernel_wrong_length_raises(self, star_bundle):
        with pytest.raises(ValueError, match="shape"):
            gpgraph_alpha2_model(Command.Q, [0.0, 0.0], star_bundle, kernel=lambda d, h, out: out[:-1])

    def test_module_is_callable(self, star_bundle):
        ret = pygpgraph(Command.MU, None, star_bundle)
        np.testing.assert_array_equal(ret.to_array(), [0.0])

    def test_bundle_is_not_mutated(self, star_bundle):
        before = [r.value.copy() for r in star_bundle.ints]
        gpgraph_alpha2_model(Command.Q, [0.2, 0.1], star_bundle)
        for a, r in zip(before, star_bundle.ints):
            np.testing.assert_array_equal(a, r.value)

    def test_debug_logging(self, star_graph, caplog):
        bundle = pygpgraph.graph_spde_alpha2(star_graph, debug=True)
        with caplog.at_level("DEBUG", logger="pygpgraph.cgeneric"):
            gpgraph_alpha2_model(Command.INITIAL, None, bundle)
        assert any("cmd=INITIAL" in rec.getMessage() for rec in caplog.records)

    def test_debug_logging_does_not_flatten_result(self, star_graph, caplog, monkeypatch):
        bundle = pygpgraph.graph_spde_alpha2(star_graph, debug=True)
        to_array = Mock(side_effect=AssertionError("to_array called"))
        monkeypatch.setattr(PrecisionResult, "to_array", to_array)
        with caplog.at_level("DEBUG", logger="pygpgraph.cgeneric"):
            ret = gpgraph_alpha2_model(Command.Q, [0.0, 0.0], bundle)
        assert isinstance(ret, PrecisionResult)
        to_array.assert_not_called()
        assert any("returned PrecisionResult" in rec.getMessage() for rec in caplog.records)
