"""
raspp Command-Line Interface
============================

This package provides the `raspp` command-line tool, a Click-based
application that rewrites assembly files to standard output.
"""

__all__ = ["raspp"]
