"""
Build setup for pygpgraph.

The pure-Python modules can optionally be compiled to C extensions (.so
files) with Cython. The .py sources ship alongside the extensions; without
Cython a plain pure-Python package is built.

Usage:
    # Editable install
    pip install -e .[test]

    # Local build (for testing)
    pip install cython
    python setup.py build_ext --inplace

    # Build wheel
    pip install build cython
    python -m build --wheel
"""

from pathlib import Path

# Must import setuptools before Cython
from setuptools import setup, find_packages

# Check if Cython is available
try:
    from Cython.Build import cythonize
    from Cython.Distutils import Extension
    CYTHON_AVAILABLE = True
except ImportError:
    CYTHON_AVAILABLE = False
    cythonize = None
    Extension = None


# Package source directory
PACKAGE_DIR = Path(__file__).parent / "install" / "pygpgraph"

# Python files to compile (exclude __init__.py - it needs to stay as .py for imports)
COMPILE_MODULES = [
    "cgeneric.py",       # Command dispatch
    "config.py",         # Bundle schema checks
    "kernel.py",         # Precision assembly
    "graph.py",          # Constraint basis and bundle builder
    "bundle.py",
    "priors.py",
    "sm.py",
    "transforms.py",
]


def get_extensions():
    """Create Cython extension modules."""
    if not CYTHON_AVAILABLE:
        print("WARNING: Cython not available. Building pure Python package.")
        return []

    extensions = []
    for module_file in COMPILE_MODULES:
        module_path = PACKAGE_DIR / module_file
        if module_path.exists():
            # Convert filename to module name: kernel.py -> pygpgraph.kernel
            module_name = f"pygpgraph.{module_file[:-3]}"
            relative_path = f"install/pygpgraph/{module_file}"
            extensions.append(
                Extension(
                    module_name,
                    [relative_path],
                    cython_directives={
                        'language_level': '3',
                        'embedsignature': False,
                    }
                )
            )

    return cythonize(
        extensions,
        compiler_directives={
            'language_level': '3',
            'embedsignature': False,
        },
        annotate=False,
    )


# Only use extensions if Cython is available
ext_modules = get_extensions() if CYTHON_AVAILABLE else []

setup(
    name="pygpgraph",
    version="0.1.0",
    description="Alpha=2 Whittle-Matern GMRF on metric graphs as a cgeneric-style model",
    package_dir={"": "install"},
    packages=find_packages(where="install"),
    python_requires=">=3.8",
    install_requires=[
        "numpy>=1.21",
        "scipy>=1.7",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
        "cython": ["cython>=3.0"],
    },
    ext_modules=ext_modules,
)
