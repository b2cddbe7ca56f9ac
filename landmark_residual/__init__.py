"""
Landmark residual for interpolated pose-graph nodes.
"""

__version__ = "0.1.0"
