"""
Test configuration and fixtures for pygpgraph.

Provides small metric graphs, their alpha=2 data bundles, and numerical
tolerances shared across the test modules.
"""

import sys
from pathlib import Path

import numpy as np
import pytest

# Add install/ to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / 'install'))

from pygpgraph.graph import MetricGraph, graph_spde_alpha2


@pytest.fixture
def single_edge_graph():
    """One edge of length 2 between two degree-1 vertices."""
    return MetricGraph(E=[[0, 1]], edge_lengths=[2.0])


@pytest.fixture
def line_graph():
    """Path 0 -> 1 -> 2 with lengths 1.0 and 1.5."""
    return MetricGraph(E=[[0, 1], [1, 2]], edge_lengths=[1.0, 1.5])


@pytest.fixture
def star_graph():
    """Three edges leaving hub 0, mixed orientation."""
    return MetricGraph(E=[[0, 1], [0, 2], [3, 0]], edge_lengths=[1.0, 0.5, 2.0])


@pytest.fixture
def star_bundle(star_graph):
    """Alpha=2 bundle on the star graph with standard-normal priors."""
    return graph_spde_alpha2(
        star_graph,
        parameterization="matern",
        prior_theta_meanlog=0.0,
        prior_theta_sdlog=1.0,
        prior_sigma_meanlog=0.0,
        prior_sigma_sdlog=1.0,
    )


@pytest.fixture
def tolerance_config():
    """Standard tolerance configuration for numerical tests."""
    return {
        'rtol': 1e-8,
        'atol': 1e-10,
    }
