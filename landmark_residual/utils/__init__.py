"""
Utility modules for landmark residual evaluation.
"""

from .config_loader import ConfigLoader, CircularIncludeError

__all__ = ['ConfigLoader', 'CircularIncludeError']
