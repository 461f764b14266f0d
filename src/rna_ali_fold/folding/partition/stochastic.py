from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from rna_ali_fold.errors import InvariantViolation
from rna_ali_fold.folding.common_traceback import TraceResult, build_trace_result
from rna_ali_fold.folding.gquad import GquadLayout, fitting_layouts
from rna_ali_fold.folding.partition.pf_recurrences import PartitionFunctionEngine
from rna_ali_fold.folding.partition.pf_state import PartitionState

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SampledStructure:
    """
    One structure drawn from the Boltzmann ensemble.

    Attributes
    ----------
    trace : TraceResult
        The sampled pairs and dot-bracket string.
    probability : float
        Probability of drawing exactly this structure.
    energy : Optional[float]
        Per-sequence energy in kcal/mol, if requested.
    """
    trace: TraceResult
    probability: float
    energy: Optional[float] = None

    @property
    def structure(self) -> str:
        return self.trace.dot_bracket


class StochasticSampler:
    """
    Draws structures from the ensemble by stochastic backtracking.

    Each decomposition step picks one term of the inside recursion with
    probability proportional to its weight; the probability of a structure is
    the product of the chosen ratios. A circular alignment starts from the
    closures of its exterior loop.

    Parameters
    ----------
    engine : PartitionFunctionEngine
        The engine whose inside pass filled `state`.
    state : PartitionState
        Filled inside arrays.
    seed : Optional[int]
        Seed of the `numpy.random.Generator`; None draws fresh entropy.
    """

    def __init__(self, engine: PartitionFunctionEngine, state: PartitionState, seed: Optional[int] = None):
        self.engine = engine
        self.state = state
        self.rng = np.random.default_rng(seed)
        self._circular_options: Optional[List[Tuple[float, object]]] = None

    def sample(self) -> Tuple[TraceResult, float]:
        """Draws one structure and returns it with its probability."""
        state = self.state
        n = state.seq_len
        pairs: List[Tuple[int, int]] = []
        gquads: List[GquadLayout] = []
        probability = 1.0
        root = ('QC', 1, n) if state.circular is not None else ('Q5', 0, n)
        stack: List[Tuple[str, int, int]] = [root]

        while stack:
            which, i, j = stack.pop()
            if which == 'Q5':
                if j <= 0:
                    continue
                ratio, frames, quad = self._choose_exterior(j)
            elif which == 'QC':
                ratio, frames, quad = self._choose_circular()
            elif which == 'QB':
                pairs.append((i, j))
                ratio, frames, quad = self._choose_pair(i, j)
            elif which == 'QM':
                ratio, frames, quad = self._choose_qm(i, j)
            else:
                ratio, frames, quad = self._choose_qm1(i, j)

            probability *= ratio
            stack.extend(frames)
            if quad is not None:
                gquads.append(quad)

        return build_trace_result(n, pairs, gquads), probability

    # ---------- Choice helpers ----------

    def _pick(self, options: Sequence[Tuple[float, object]], where: str) -> Tuple[float, object]:
        total = sum(weight for weight, _ in options)
        if total <= 0.0:
            raise InvariantViolation(f"Stochastic backtrack reached {where} with zero weight.")
        threshold = self.rng.random() * total
        acc = 0.0
        for weight, payload in options:
            acc += weight
            if weight > 0.0 and acc >= threshold:
                return weight / total, payload
        weight, payload = next((w, p) for w, p in reversed(options) if w > 0.0)
        return weight / total, payload

    def _choose_exterior(self, j: int):
        engine, state = self.engine, self.state
        turn = engine.config.min_loop_size
        scale = state.scale
        q5 = state.q5
        options: List[Tuple[float, object]] = [
            (q5[j - 1] * engine.exterior_unpaired_weight(j) * scale[1], ('U', None))
        ]
        for i in range(j - turn - 1, 0, -1):
            inner = state.qb.get(i, j)
            if inner > 0.0:
                options.append((q5[i - 1] * inner * engine.exterior_stem_weight(i, j), ('S', i)))
            if state.gquad is not None and state.gquad.get(i, j) > 0.0:
                options.append((q5[i - 1] * state.gquad.get(i, j), ('G', i)))

        ratio, (kind, i) = self._pick(options, f"f5[{j}]")
        if kind == 'U':
            return ratio, [('Q5', 0, j - 1)], None
        if kind == 'S':
            return ratio, [('Q5', 0, i - 1), ('QB', i, j)], None

        layouts = fitting_layouts(engine.boltzmann_model.model, i, j)
        layout_ratio, layout = self._pick(
            [(engine.boltzmann_model.exp_gquad(g.layers, g.linker_total), g) for g in layouts],
            f"G-quadruplex {i}..{j}",
        )
        return ratio * layout_ratio, [('Q5', 0, i - 1)], layout

    def _choose_circular(self):
        engine, state = self.engine, self.state
        n = state.seq_len
        # The closures are the same for every draw.
        if self._circular_options is None:
            options: List[Tuple[float, object]] = [(engine.circular_open_weight(state), ('O',))]
            for i, j, weight in engine.circular_hairpin_terms(state):
                options.append((weight, ('H', i, j)))
            for i, j, p, q, weight in engine.circular_interior_terms(state):
                options.append((weight, ('I', i, j, p, q)))
            for k, u, weight in engine.circular_multiloop_terms(state):
                options.append((weight, ('M', k, u)))
            self._circular_options = options

        ratio, choice = self._pick(self._circular_options, "the circular exterior loop")
        if choice[0] == 'O':
            return ratio, [], None
        if choice[0] == 'H':
            return ratio, [('QB', choice[1], choice[2])], None
        if choice[0] == 'I':
            return ratio, [('QB', choice[1], choice[2]), ('QB', choice[3], choice[4])], None
        k, u = choice[1], choice[2]
        return ratio, [('QM', 1, k), ('QM1', k + 1, u), ('QM1', u + 1, n)], None

    def _choose_pair(self, i: int, j: int):
        engine, state = self.engine, self.state
        options: List[Tuple[float, object]] = [(engine.hairpin_weight(i, j) * state.scale[j - i + 1], ('H',))]
        for p, q, weight in engine.interior_terms(i, j, state):
            options.append((weight, ('I', p, q)))
        closing = engine.ml_closing_weight(i, j)
        if closing > 0.0:
            for u, weight in engine.multiloop_terms(i, j, state):
                options.append((weight * closing * state.scale[2], ('M', u)))

        ratio, choice = self._pick(options, f"qb[{i},{j}]")
        if choice[0] == 'H':
            return ratio, [], None
        if choice[0] == 'I':
            return ratio, [('QB', choice[1], choice[2])], None
        u = choice[1]
        return ratio, [('QM', i + 1, u - 1), ('QM1', u, j - 1)], None

    def _choose_qm1(self, i: int, j: int):
        engine, state = self.engine, self.state
        turn = engine.config.min_loop_size
        options: List[Tuple[float, object]] = []
        for l in range(i + turn + 1, j + 1):
            inner = state.qb.get(i, l)
            if inner > 0.0:
                weight = inner * engine.ml_stem_weight(i, l) * engine.ml_unpaired_weight(l + 1, j) * state.scale[j - l]
                options.append((weight, l))

        ratio, l = self._pick(options, f"qm1[{i},{j}]")
        return ratio, [('QB', i, l)], None

    def _choose_qm(self, i: int, j: int):
        engine, state = self.engine, self.state
        options: List[Tuple[float, object]] = []
        for k in range(i, j - engine.config.min_loop_size):
            branch = state.qm1.get(k, j)
            if branch == 0.0:
                continue
            options.append((engine.ml_unpaired_weight(i, k - 1) * state.scale[k - i] * branch, ('U', k)))
            if k > i:
                options.append((state.qm.get(i, k - 1) * branch, ('M', k)))

        ratio, (kind, k) = self._pick(options, f"qm[{i},{j}]")
        frames = [('QM1', k, j)]
        if kind == 'M':
            frames.append(('QM', i, k - 1))
        return ratio, frames, None


def sample_structures(
    engine: PartitionFunctionEngine,
    state: PartitionState,
    count: int,
    *,
    seed: Optional[int] = None,
    evaluate=None,
) -> List[SampledStructure]:
    """
    Draws `count` structures from the ensemble.

    Parameters
    ----------
    engine : PartitionFunctionEngine
        The engine whose inside pass filled `state`.
    state : PartitionState
        Filled inside arrays.
    count : int
        Number of draws.
    seed : Optional[int]
        Seed for reproducible draws.
    evaluate : Optional[Callable[[str], float]]
        Returns the per-sequence energy of a dot-bracket string; energies are
        omitted when None.

    Returns
    -------
    List[SampledStructure]
        The samples, in draw order.
    """
    sampler = StochasticSampler(engine, state, seed)
    samples: List[SampledStructure] = []
    for _ in range(count):
        trace, probability = sampler.sample()
        energy = evaluate(trace.dot_bracket) if evaluate is not None else None
        samples.append(SampledStructure(trace=trace, probability=probability, energy=energy))

    logger.info(f"Drew {count} stochastic samples")
    return samples
