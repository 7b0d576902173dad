import os
import sys

sys.path.insert(0, os.path.abspath("../src"))

project = "prism-utils"
html_theme = "sphinx_rtd_theme"

extensions = [
    "sphinx.ext.autodoc",  # Auto-generate docs from docstrings
    "sphinx.ext.napoleon",  # Support Google/NumPy docstring style
    "sphinx.ext.viewcode",  # Add links to source code
    "sphinx.ext.intersphinx",  # Link to other projects' documentation
]

# Link to external Python docs
intersphinx_mapping = {
    "python": ("https://docs.python.org/3", None),
    "attrs": ("https://www.attrs.org/en/stable/", None),
    "click": ("https://click.palletsprojects.com/en/stable/", None),
}

doctest_test_doctest_blocks = None  # Don't try to run any code samples

nitpicky = True
python_use_unqualified_type_names = True  # Enables shorter references

rst_prolog = """
.. |Iterable| replace:: :class:`~typing.Iterable`
.. |Iterator| replace:: :class:`~typing.Iterator`
.. |threading.Event| replace:: :class:`~threading.Event`
.. |ParallelPreprocessor| replace:: :class:`~prism_utils.parallel_preprocess.ParallelPreprocessor`
.. |PreprocessorState| replace:: :class:`~prism_utils.parallel_preprocess.PreprocessorState`
.. |parallel_preprocess| replace:: :obj:`~prism_utils.parallel_preprocess.parallel_preprocess`
.. |HashType| replace:: :class:`~prism_utils.hash_utils.HashType`
.. |HashInfo| replace:: :class:`~prism_utils.hash_utils.HashInfo`
.. |find_files| replace:: :obj:`~prism_utils.files.find_files`
"""
default_domain = "py"
