# Sphinx Configuration for Sandboxer Python API Documentation
# Automated documentation generation

import os
import sys
sys.path.insert(0, os.path.abspath('../../../backend'))
sys.path.insert(0, os.path.abspath('../../../scripts/sandboxctl'))

project = 'Sandboxer'
copyright = '2024, Sandboxer Team'
author = 'Sandboxer Team'
release = '1.0.0'

extensions = [
    'sphinx.ext.autodoc',
    'sphinx.ext.viewcode',
    'sphinx.ext.napoleon',
    'sphinx.ext.coverage',
]

templates_path = ['_templates']
exclude_patterns = ['_build', 'Thumbs.db', '.DS_Store']

html_theme = 'sphinx_rtd_theme'

html_theme_options = {
    'navigation_depth': 4,
    'collapse_navigation': False,
    'sticky_navigation': True,
}

autodoc_default_options = {
    'member-order': 'bysource',
    'special-members': '__init__',
    'undoc-members': True,
    'show-inheritance': True,
}

# Engine and registry clients are not needed to render the docs
autodoc_mock_imports = [
    'aiodocker',
    'aiohttp',
    'prometheus_client',
    'structlog',
]

# Napoleon settings
napoleon_google_docstring = True
napoleon_numpy_docstring = False
napoleon_include_init_with_doc = True
napoleon_include_private_with_doc = False

# Coverage settings
coverage_show_missing_items = True
