"""
Hungarian Algorithm (Kuhn-Munkres) for Detection-to-Track Assignment

Solves the minimum-cost bipartite matching for an arbitrary n x m cost
matrix. The matrix is padded to a square of size max(n, m) with a large
finite filler cost, and the O(size^3) primal-dual shortest augmenting path
method is run on it. Padding rows and columns are dropped from the result.

Buffers (padded cost, potentials u/v, column assignment p, path links way)
are sized once to the solver capacity and reused across frames.

Reference:
    - Kuhn, H.W. "The Hungarian Method for the Assignment Problem", 1955
    - Jonker, R., Volgenant, A. "A Shortest Augmenting Path Algorithm", 1987
"""

from typing import List, Sequence, Tuple

import numpy as np

PAD_COST = 1e9


class HungarianSolver:
    """
    Reusable minimum-cost assignment solver.

    Example:
        >>> solver = HungarianSolver(capacity=20)
        >>> solver.solve([[4, 1, 3], [2, 0, 5], [3, 2, 2]])
        [(1, 0), (0, 1), (2, 2)]
    """

    def __init__(self, capacity: int = 20) -> None:
        """
        Initialize solver buffers.

        Args:
            capacity: Largest square size solved without reallocating
        """
        self.capacity = 0
        self._allocate(max(1, int(capacity)))

    def _allocate(self, capacity: int) -> None:
        self.capacity = capacity
        self._cost = np.full((capacity, capacity), PAD_COST, dtype=np.float64)
        self._u = np.zeros(capacity + 1, dtype=np.float64)
        self._v = np.zeros(capacity + 1, dtype=np.float64)
        self._minv = np.zeros(capacity + 1, dtype=np.float64)
        self._p = np.zeros(capacity + 1, dtype=np.int64)
        self._way = np.zeros(capacity + 1, dtype=np.int64)
        self._used = np.zeros(capacity + 1, dtype=bool)

    def solve(self, cost_matrix: Sequence[Sequence[float]]) -> List[Tuple[int, int]]:
        """
        Solve the linear assignment problem.

        Args:
            cost_matrix: n x m costs, cost_matrix[i][j] = cost of row i -> column j

        Returns:
            (row, col) pairs minimizing total cost, min(n, m) of them,
            ordered by column
        """
        costs = np.asarray(cost_matrix, dtype=np.float64)
        if costs.ndim != 2 or costs.shape[0] == 0 or costs.shape[1] == 0:
            return []

        n, m = costs.shape
        size = max(n, m)
        if size > self.capacity:
            self._allocate(size)

        # Pad to square with high costs
        cost = self._cost[:size, :size]
        cost.fill(PAD_COST)
        cost[:n, :m] = np.where(np.isfinite(costs), costs, PAD_COST)

        u = self._u[: size + 1]
        v = self._v[: size + 1]
        p = self._p[: size + 1]
        way = self._way[: size + 1]
        minv = self._minv[: size + 1]
        used = self._used[: size + 1]
        u.fill(0.0)
        v.fill(0.0)
        p.fill(0)
        way.fill(0)

        for i in range(1, size + 1):
            p[0] = i
            j0 = 0
            minv.fill(np.inf)
            used.fill(False)

            while True:
                used[j0] = True
                i0 = p[j0]

                free = np.flatnonzero(~used[1:]) + 1
                cur = cost[i0 - 1, free - 1] - u[i0] - v[free]
                better = cur < minv[free]
                minv[free[better]] = cur[better]
                way[free[better]] = j0

                k = int(np.argmin(minv[free]))
                j1 = int(free[k])
                delta = minv[j1]

                taken = np.flatnonzero(used)
                u[p[taken]] += delta
                v[taken] -= delta
                minv[free] -= delta

                j0 = j1
                if p[j0] == 0:
                    break

            # Trace back the augmenting path
            while True:
                j1 = way[j0]
                p[j0] = p[j1]
                j0 = j1
                if j0 == 0:
                    break

        assignments = []
        for j in range(1, size + 1):
            row = int(p[j]) - 1
            col = j - 1
            if 0 <= row < n and col < m:
                assignments.append((row, col))

        return assignments


def solve_assignment(cost_matrix: Sequence[Sequence[float]]) -> List[Tuple[int, int]]:
    """One-shot solve with a throwaway solver."""
    costs = np.asarray(cost_matrix, dtype=np.float64)
    size = max(costs.shape) if costs.ndim == 2 and costs.size else 1
    return HungarianSolver(capacity=size).solve(costs)


def assignment_cost(cost_matrix: Sequence[Sequence[float]], pairs: List[Tuple[int, int]]) -> float:
    """Total cost of a list of (row, col) pairs."""
    costs = np.asarray(cost_matrix, dtype=np.float64)
    return float(sum(costs[r, c] for r, c in pairs))
