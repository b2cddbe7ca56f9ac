"""
Abstract base class for automatically differentiated cost functions.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple
import numpy as np

from landmark_residual.utils.jax_init import jax, jnp


@dataclass
class EvaluationResult:
    """
    Result of evaluating a cost function at one point.

    Attributes:
        residuals: Residual vector, shape (num_residuals,)
        jacobians: One (num_residuals, block_size) matrix per parameter block,
            or None when Jacobians were not requested
        cost: Half the squared residual norm, the solver's objective term
    """
    residuals: np.ndarray
    jacobians: Optional[List[np.ndarray]]
    cost: float

    def stacked_jacobian(self) -> np.ndarray:
        """Jacobian with respect to all parameter blocks concatenated."""
        if self.jacobians is None:
            raise ValueError("Jacobians were not computed")
        return np.hstack(self.jacobians)


class AutoDiffCostFunction(ABC):
    """
    Residual block differentiated with forward-mode automatic differentiation.

    Subclasses implement `residual` with `jax.numpy` operations only. The same
    function is evaluated on plain float64 arrays for residuals and on
    `jax.jacfwd` tracers (dual numbers) for Jacobians, so no derivative code
    is written by hand. Subclasses must be immutable once constructed: the
    compiled functions capture the instance state on first use.
    """

    def __init__(
        self,
        num_residuals: int,
        parameter_block_sizes: Sequence[int],
        use_jit: bool = True
    ):
        """
        Initialize the cost function.

        Args:
            num_residuals: Dimension of the residual vector
            parameter_block_sizes: Size of each parameter block, in call order
            use_jit: Compile residual and Jacobian evaluation
        """
        self._num_residuals = int(num_residuals)
        self._parameter_block_sizes: Tuple[int, ...] = tuple(int(s) for s in parameter_block_sizes)

        argnums = tuple(range(len(self._parameter_block_sizes)))
        residual_fn = self.residual
        jacobian_fn = jax.jacfwd(self.residual, argnums=argnums)
        if use_jit:
            residual_fn = jax.jit(residual_fn)
            jacobian_fn = jax.jit(jacobian_fn)
        self._residual_fn = residual_fn
        self._jacobian_fn = jacobian_fn

    @property
    def num_residuals(self) -> int:
        """Dimension of the residual vector."""
        return self._num_residuals

    @property
    def parameter_block_sizes(self) -> Tuple[int, ...]:
        """Size of each parameter block."""
        return self._parameter_block_sizes

    @abstractmethod
    def residual(self, *parameter_blocks):
        """
        Compute the residual from the parameter blocks.

        Must be a pure function of its arguments written with `jax.numpy`.
        """
        pass

    def _prepare_blocks(self, parameter_blocks: Sequence) -> List:
        """Convert blocks to float64 arrays and check their sizes."""
        if len(parameter_blocks) != len(self._parameter_block_sizes):
            raise ValueError(
                f"Expected {len(self._parameter_block_sizes)} parameter blocks, "
                f"got {len(parameter_blocks)}"
            )
        blocks = []
        for index, (block, size) in enumerate(zip(parameter_blocks, self._parameter_block_sizes)):
            block = jnp.asarray(block, dtype=jnp.float64).reshape(-1)
            if block.shape[0] != size:
                raise ValueError(f"Parameter block {index} must have {size} values, got {block.shape[0]}")
            blocks.append(block)
        return blocks

    def __call__(self, *parameter_blocks) -> np.ndarray:
        """Evaluate the residual on plain floating-point values."""
        blocks = self._prepare_blocks(parameter_blocks)
        return np.asarray(self._residual_fn(*blocks))

    def jacobians(self, *parameter_blocks) -> List[np.ndarray]:
        """Jacobian of the residual with respect to each parameter block."""
        blocks = self._prepare_blocks(parameter_blocks)
        return [np.asarray(J) for J in self._jacobian_fn(*blocks)]

    def evaluate(
        self,
        parameter_blocks: Sequence,
        compute_jacobians: bool = True
    ) -> EvaluationResult:
        """
        Evaluate residuals and, optionally, Jacobians.

        Args:
            parameter_blocks: One array per parameter block
            compute_jacobians: Whether to compute Jacobians

        Returns:
            EvaluationResult with residuals, Jacobians and cost
        """
        blocks = self._prepare_blocks(parameter_blocks)
        residuals = np.asarray(self._residual_fn(*blocks))
        jacobians = None
        if compute_jacobians:
            jacobians = [np.asarray(J) for J in self._jacobian_fn(*blocks)]
        return EvaluationResult(
            residuals=residuals,
            jacobians=jacobians,
            cost=0.5 * float(residuals @ residuals)
        )

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(num_residuals={self._num_residuals}, "
            f"parameter_block_sizes={self._parameter_block_sizes})"
        )
