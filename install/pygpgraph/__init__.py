"""
pygpgraph package entry point.

Usage:
    import pygpgraph

    bundle = pygpgraph.graph_spde_alpha2(graph)        # Build model data
    pygpgraph("GRAPH", None, bundle)                   # Run one command
    pygpgraph.cgeneric_call("Q", [0.0, 0.0], bundle)   # Flat engine layout

Version: 0.1.0
"""

import sys as _sys
from types import ModuleType as _ModuleType

from .exceptions import GPGraphError, ConfigurationError, CommandError, BundleFormatError
from .bundle import Record, NamedDataBundle, read_bundle, write_bundle
from .config import Alpha2Data, extract_alpha2_data
from .transforms import Hyperparameters, transform_theta
from .priors import GaussianLogPrior, normal_logpdf
from .kernel import compute_q_alpha2, precision_matrix
from .graph import MetricGraph, alpha2_constraint_basis, precision_pattern, graph_spde_alpha2
from .cgeneric import (
    Command,
    GraphResult,
    PrecisionResult,
    MeanResult,
    InitialResult,
    LogPriorResult,
    GPGraphAlpha2Model,
    gpgraph_alpha2_model as _model_func,
    cgeneric_call,
)

__version__ = "0.1.0"


class _CallableModule(_ModuleType):
    """A module that can be called directly: pygpgraph(cmd, theta, data)."""

    def __call__(self, *args, **kwargs):
        return _model_func(*args, **kwargs)

    gpgraph_alpha2_model = staticmethod(_model_func)


# Replace this module with callable version
_old_module = _sys.modules[__name__]
_new_module = _CallableModule(__name__)
_new_module.__dict__.update(_old_module.__dict__)
_sys.modules[__name__] = _new_module

__all__ = [
    "gpgraph_alpha2_model",
    "cgeneric_call",
    "Command",
    "GPGraphAlpha2Model",
    "GraphResult",
    "PrecisionResult",
    "MeanResult",
    "InitialResult",
    "LogPriorResult",
    # Data
    "Record",
    "NamedDataBundle",
    "read_bundle",
    "write_bundle",
    "Alpha2Data",
    "extract_alpha2_data",
    "MetricGraph",
    "alpha2_constraint_basis",
    "precision_pattern",
    "graph_spde_alpha2",
    # Numerics
    "Hyperparameters",
    "transform_theta",
    "GaussianLogPrior",
    "normal_logpdf",
    "compute_q_alpha2",
    "precision_matrix",
    # Exceptions
    "GPGraphError",
    "ConfigurationError",
    "CommandError",
    "BundleFormatError",
]
