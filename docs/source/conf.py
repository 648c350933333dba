# Configuration file for the Sphinx documentation builder.
#
# For the full list of built-in configuration values, see the documentation:
# https://www.sphinx-doc.org/en/master/usage/configuration.html

import os
import sys
import sphinx_rtd_dark_mode

# conf.py lives in docs/source; the packages sit two levels up
sys.path.insert(0, os.path.abspath("../.."))

project = 'Traffic Console'
copyright = '2026, Traffic Console developers'
author = 'Traffic Console developers'
release = '0.1'

# -- General configuration ---------------------------------------------------

extensions = [
    "sphinx.ext.autodoc",    # generate docs from docstrings
    "sphinx.ext.napoleon",   # parse Google/NumPy style docstrings
    "sphinx.ext.viewcode",   # add links to source code
    "sphinx_rtd_dark_mode"
]

templates_path = ['_templates']
exclude_patterns = []

# -- Options for HTML output -------------------------------------------------

html_theme = "sphinx_rtd_theme"
default_dark_mode = True
html_static_path = ['_static']

# The engine and the window need native libraries the docs build lacks
autodoc_mock_imports = ["pygame", "traci", "uvicorn"]
