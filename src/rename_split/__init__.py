"""
rename-split package.

Why this file exists:
- It marks this folder as a package so `python -m rename_split` works.
- It keeps import side effects minimal; the pipeline lives in pipeline.py
  and the CLI in cli.py.
"""

__all__ = ["__version__"]

# Keep a simple version string for manifests and debugging.
__version__ = "0.2.0"
