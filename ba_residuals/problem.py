"""
Residual registration and least-squares driver.

A Problem holds parameter blocks (numpy arrays, identified by object
identity) and residual blocks (a cost function plus the parameter blocks it
reads). It checks every registration against the cost function's declared
block sizes, evaluates all residuals, optionally on a thread pool, and
drives scipy.optimize.least_squares over the non-constant blocks.

Example usage:
    problem = Problem()
    point, pose = model.initial_blocks(xyz)
    problem.add_residual_block(ReprojectionError.create(obs, sigma, model), [point, pose])
    problem.add_residual_block(create_pose_prior(pose, config.weights), [pose])
    summary = problem.solve(config.solver)

scipy cannot reject a step on an explicit failure signal. Failed residuals
keep their 1e20 sentinels, so a step that provokes a failure raises the
cost and is rejected by the trust-region test instead.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Set
import logging
import time

import numpy as np
from scipy.optimize import least_squares
from scipy.sparse import lil_matrix

from .config import SolverSettings
from .layout import BlockLayoutError, check_block_sizes
from .residuals import CostFunction, ResidualEvaluation

logger = logging.getLogger(__name__)


@dataclass
class _ResidualBlock:
    cost: CostFunction
    block_indices: List[int]


@dataclass
class ProblemEvaluation:
    """Concatenated residuals of all residual blocks."""
    residuals: np.ndarray
    num_failed: int

    @property
    def cost(self) -> float:
        return 0.5 * float(np.dot(self.residuals, self.residuals))


@dataclass
class SolveSummary:
    """Outcome of Problem.solve."""
    success: bool
    message: str
    initial_cost: float
    final_cost: float
    num_function_evaluations: int
    num_residual_blocks: int
    num_parameters: int
    num_failed_residuals: int
    elapsed_seconds: float


class Problem:
    """
    Collection of parameter blocks and residual blocks.
    """

    def __init__(self):
        self._parameter_blocks: List[np.ndarray] = []
        self._block_index: Dict[int, int] = {}
        self._constant: Set[int] = set()
        self._residual_blocks: List[_ResidualBlock] = []

    @property
    def num_parameter_blocks(self) -> int:
        return len(self._parameter_blocks)

    @property
    def num_residual_blocks(self) -> int:
        return len(self._residual_blocks)

    @property
    def num_residuals(self) -> int:
        return sum(rb.cost.num_residuals for rb in self._residual_blocks)

    def add_parameter_block(self, values: np.ndarray) -> np.ndarray:
        """
        Register a parameter block.

        The block must be a 1D float64 numpy array; the problem reads and,
        after solve(), writes it in place.
        """
        if not isinstance(values, np.ndarray) or values.dtype != np.float64 or values.ndim != 1:
            raise BlockLayoutError("Parameter blocks must be 1D float64 numpy arrays")
        if values.size == 0:
            raise BlockLayoutError("Parameter blocks must not be empty")
        key = id(values)
        if key not in self._block_index:
            self._block_index[key] = len(self._parameter_blocks)
            self._parameter_blocks.append(values)
        return values

    def set_parameter_block_constant(self, values: np.ndarray) -> None:
        self._constant.add(self._index_of(values))

    def set_parameter_block_variable(self, values: np.ndarray) -> None:
        self._constant.discard(self._index_of(values))

    def is_parameter_block_constant(self, values: np.ndarray) -> bool:
        return self._index_of(values) in self._constant

    def _index_of(self, values: np.ndarray) -> int:
        try:
            return self._block_index[id(values)]
        except KeyError:
            raise BlockLayoutError("Parameter block was never added to the problem") from None

    def add_residual_block(self, cost: CostFunction, blocks: Sequence[np.ndarray]) -> None:
        """
        Register a cost function over the given parameter blocks.

        Raises:
            BlockLayoutError: If the blocks do not match cost.block_sizes
        """
        check_block_sizes(blocks, cost.block_sizes)
        indices = [self._block_index[id(self.add_parameter_block(b))] for b in blocks]
        if len(set(indices)) != len(indices):
            raise BlockLayoutError("The same parameter block appears twice in one residual block")
        self._residual_blocks.append(_ResidualBlock(cost, indices))
        logger.debug(
            f"Residual block {len(self._residual_blocks) - 1}: {type(cost).__name__} "
            f"over blocks {indices}"
        )

    # Flat vector of the variable blocks, in registration order

    def _variable_indices(self) -> List[int]:
        return [i for i in range(len(self._parameter_blocks)) if i not in self._constant]

    def _offsets(self) -> Dict[int, int]:
        offsets = {}
        offset = 0
        for i in self._variable_indices():
            offsets[i] = offset
            offset += self._parameter_blocks[i].size
        return offsets

    def _pack(self) -> np.ndarray:
        blocks = [self._parameter_blocks[i] for i in self._variable_indices()]
        if not blocks:
            return np.zeros(0)
        return np.concatenate(blocks)

    def _unpack(self, x: np.ndarray, offsets: Dict[int, int]) -> List[np.ndarray]:
        values = []
        for i, block in enumerate(self._parameter_blocks):
            if i in offsets:
                values.append(x[offsets[i]:offsets[i] + block.size])
            else:
                values.append(block)
        return values

    def _evaluate_values(
        self,
        values: List[np.ndarray],
        executor: Optional[ThreadPoolExecutor] = None,
    ) -> ProblemEvaluation:
        def run(rb: _ResidualBlock) -> ResidualEvaluation:
            return rb.cost([values[i] for i in rb.block_indices])

        if executor is None:
            evaluations = [run(rb) for rb in self._residual_blocks]
        else:
            evaluations = list(executor.map(run, self._residual_blocks))

        if not evaluations:
            return ProblemEvaluation(np.zeros(0), 0)

        residuals = np.concatenate([ev.residuals for ev in evaluations])
        num_failed = sum(1 for ev in evaluations if not ev.ok)
        return ProblemEvaluation(residuals, num_failed)

    def evaluate(self, workers: int = 1) -> ProblemEvaluation:
        """Evaluate all residual blocks at the current parameter values."""
        values = list(self._parameter_blocks)
        if workers > 1:
            with ThreadPoolExecutor(max_workers=workers) as executor:
                return self._evaluate_values(values, executor)
        return self._evaluate_values(values)

    def jacobian_sparsity(self) -> lil_matrix:
        """Boolean structure of d(residuals)/d(variable parameters)."""
        offsets = self._offsets()
        num_params = sum(self._parameter_blocks[i].size for i in offsets)
        S = lil_matrix((self.num_residuals, num_params), dtype=bool)

        row = 0
        for rb in self._residual_blocks:
            rows = slice(row, row + rb.cost.num_residuals)
            for i in rb.block_indices:
                if i in offsets:
                    start = offsets[i]
                    S[rows, start:start + self._parameter_blocks[i].size] = True
            row += rb.cost.num_residuals
        return S

    def solve(self, settings: Optional[SolverSettings] = None) -> SolveSummary:
        """
        Minimize the sum of squared residuals over the variable blocks.

        Optimized values are written back into the registered blocks.

        Args:
            settings: Solver settings (robust loss, tolerances, threads)

        Returns:
            SolveSummary with costs and termination information
        """
        settings = settings if settings is not None else SolverSettings()
        start_time = time.time()

        offsets = self._offsets()
        x0 = self._pack()
        initial = self.evaluate(workers=settings.num_threads)

        logger.info(
            f"Solving {self.num_residual_blocks} residual blocks, "
            f"{self.num_residuals} residuals, {x0.size} parameters"
        )

        if x0.size == 0 or self.num_residuals == 0:
            logger.warning("Nothing to optimize")
            return SolveSummary(
                success=True,
                message="No variable parameters or residuals",
                initial_cost=initial.cost,
                final_cost=initial.cost,
                num_function_evaluations=0,
                num_residual_blocks=self.num_residual_blocks,
                num_parameters=int(x0.size),
                num_failed_residuals=initial.num_failed,
                elapsed_seconds=time.time() - start_time,
            )

        executor = ThreadPoolExecutor(max_workers=settings.num_threads) if settings.num_threads > 1 else None
        try:
            def residuals(x):
                return self._evaluate_values(self._unpack(x, offsets), executor).residuals

            result = least_squares(
                residuals,
                x0,
                jac_sparsity=self.jacobian_sparsity(),
                method='trf',
                loss=settings.robust_loss,
                f_scale=settings.robust_threshold,
                ftol=settings.tolerance,
                xtol=settings.tolerance,
                gtol=settings.tolerance,
                max_nfev=settings.max_function_evaluations,
            )
        finally:
            if executor is not None:
                executor.shutdown()

        for i, block in enumerate(self._unpack(result.x, offsets)):
            if i in offsets:
                self._parameter_blocks[i][:] = block

        final = self.evaluate(workers=settings.num_threads)
        summary = SolveSummary(
            success=bool(result.success),
            message=str(result.message),
            initial_cost=initial.cost,
            final_cost=final.cost,
            num_function_evaluations=int(result.nfev),
            num_residual_blocks=self.num_residual_blocks,
            num_parameters=int(x0.size),
            num_failed_residuals=final.num_failed,
            elapsed_seconds=time.time() - start_time,
        )

        logger.info(
            f"Solve finished: cost {summary.initial_cost:.6g} -> {summary.final_cost:.6g} "
            f"after {summary.num_function_evaluations} evaluations ({summary.message})"
        )
        if summary.num_failed_residuals:
            logger.warning(f"{summary.num_failed_residuals} residual blocks still fail to evaluate")
        return summary
