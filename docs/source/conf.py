# Sphinx configuration for torch_afe.
#
# Build with:  sphinx-build -b html docs/source docs/build/html

import os
import sys

# Make the package importable without installation
sys.path.insert(0, os.path.abspath('../..'))

import torch_afe  # noqa: E402

# -- Project information -----------------------------------------------------

project = 'torch_afe'
author = torch_afe.__author__
copyright = f'2026, {author}'
release = version = torch_afe.__version__

# -- General configuration ---------------------------------------------------

extensions = [
    'sphinx.ext.autodoc',           # API pages from docstrings
    'sphinx.ext.napoleon',          # NumPy-style docstrings
    'sphinx.ext.viewcode',
    'sphinx.ext.intersphinx',
    'sphinx.ext.mathjax',           # Transfer function equations
    'sphinx_autodoc_typehints',
    'myst_parser',                  # README.md
]

napoleon_google_docstring = False
napoleon_numpy_docstring = True
napoleon_include_init_with_doc = True
napoleon_attr_annotations = True

autodoc_default_options = {
    'members': True,
    'member-order': 'bysource',
    'undoc-members': True,
}
autodoc_typehints = 'description'

intersphinx_mapping = {
    'python': ('https://docs.python.org/3', None),
    'numpy': ('https://numpy.org/doc/stable/', None),
    'scipy': ('https://docs.scipy.org/doc/scipy/', None),
    'torch': ('https://pytorch.org/docs/stable/', None),
}

source_suffix = {
    '.rst': 'restructuredtext',
    '.md': 'markdown',
}
master_doc = 'index'
exclude_patterns = []

# -- HTML output -------------------------------------------------------------

html_theme = 'sphinx_rtd_theme'
html_theme_options = {
    'navigation_depth': 3,
    'collapse_navigation': False,
}
html_title = f'{project} v{version}'
