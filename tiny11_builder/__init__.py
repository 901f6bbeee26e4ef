"""Tiny11 Builder - reduce Windows installation images offline.

This package stages a Windows installation source, edits the offline image
through DISM and reg.exe, re-exports it and packages a bootable ISO, using
one of three increasingly aggressive reduction variants.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
