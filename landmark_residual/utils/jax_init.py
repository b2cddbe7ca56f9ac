"""
Common JAX initialization.

Residual code must run in double precision, so JAX is configured once here and
every module that needs it imports `jax`/`jnp` from this module instead of
importing JAX directly.

Usage:
    from landmark_residual.utils.jax_init import jax, jnp
"""

import os

# Host evaluation is the default; a GPU buys nothing for 6-dimensional residuals.
os.environ.setdefault("JAX_PLATFORMS", "cpu")

import jax
import jax.numpy as jnp

jax.config.update("jax_enable_x64", True)

__all__ = ["jax", "jnp"]
