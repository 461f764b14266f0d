from __future__ import annotations
import logging
import math
import time
from dataclasses import dataclass
from typing import Iterator, Tuple

from tqdm import tqdm

from rna_ali_fold.errors import NumericOverflow
from rna_ali_fold.energies.energy_model import AlignmentBoltzmannModel
from rna_ali_fold.folding.dangles import DanglePolicy
from rna_ali_fold.folding.fold_config import AliFoldConfig
from rna_ali_fold.folding.gquad import build_gquad_weights
from rna_ali_fold.folding.partition.pf_state import CircularPartition, PartitionState, make_pf_state
from rna_ali_fold.rules.constraints import HardConstraints, LoopContext, SoftConstraints
from rna_ali_fold.rules.covariation import CovariationMatrix

logger = logging.getLogger(__name__)

# Multiplier applied to the scale factor suggested after an overflow or underflow.
SCALE_RETRY_STEP = 1.1
# Bound on the scale exponent, inside the range of `math.exp`.
_MAX_EXPONENT = 700.0


def estimate_pf_scale(mfe_kcal: float, kt_kcal: float, seq_len: int, scale_factor: float) -> float:
    """
    Per-column scale factor of the partition function.

    `pf_scale = exp(-(scale_factor · mfe) / (kT · n))`, so that the scaled
    weight of a structure near the MFE is close to 1.
    """
    if seq_len <= 0 or not math.isfinite(mfe_kcal):
        return 1.0
    exponent = -(scale_factor * mfe_kcal) / kt_kcal / seq_len
    return math.exp(max(-_MAX_EXPONENT, min(_MAX_EXPONENT, exponent)))


@dataclass(slots=True)
class PartitionFunctionEngine:
    """
    Fills the inside arrays of the McCaskill partition function over an alignment.

    Boltzmann weights are taken at `kT · N` of the row-summed energies and
    every pair additionally carries the factor of its covariation bonus.

    Attributes
    ----------
    boltzmann_model : AlignmentBoltzmannModel
        Row-summed Boltzmann weights.
    covariation : CovariationMatrix
        Admissible pairs and their scores.
    hard : HardConstraints
        Loop-context masks and unpairing permissions.
    soft : SoftConstraints
        Exterior unpaired bias.
    policy : DanglePolicy
        Ensemble dangle policy; every stem has exactly one flank choice.
    config : AliFoldConfig
        Model configuration.
    """
    boltzmann_model: AlignmentBoltzmannModel
    covariation: CovariationMatrix
    hard: HardConstraints
    soft: SoftConstraints
    policy: DanglePolicy
    config: AliFoldConfig

    @property
    def kt_kcal(self) -> float:
        """Thermal energy of a single sequence in kcal/mol."""
        return self.boltzmann_model.kt / self.boltzmann_model.model.n_seq / 1000.0

    # ---------- Loop weights shared with the outside pass and the sampler ----------

    def pair_factor(self, base_i: int, base_j: int) -> float:
        """Covariation factor of `(i, j)`, 0 if the pair is not admitted."""
        if not self.covariation.is_allowed(base_i, base_j) or not self.hard.pair_allowed(base_i, base_j):
            return 0.0
        return self.boltzmann_model.exp_covariation(self.covariation.energy_bonus(base_i, base_j))

    def exterior_unpaired_weight(self, base_k: int) -> float:
        if not self.hard.unpaired_ok(base_k):
            return 0.0
        return self.boltzmann_model.weight(self.soft.unpaired_energy(base_k, self.boltzmann_model.model.n_seq))

    def exterior_stem_weight(self, base_i: int, base_j: int) -> float:
        if not self.hard.allows(base_i, base_j, LoopContext.EXT_LOOP):
            return 0.0
        choice = self.policy.exterior_choices(base_i, base_j, self.boltzmann_model.model.length)[0]
        return self.boltzmann_model.exp_exterior_stem(base_i, base_j, choice.five, choice.three)

    def ml_stem_weight(self, base_i: int, base_j: int) -> float:
        if not self.hard.allows(base_i, base_j, LoopContext.MB_LOOP_ENC):
            return 0.0
        choice = self.policy.ml_stem_choices(base_i, base_j)[0]
        return self.boltzmann_model.exp_ml_stem(base_i, base_j, choice.five, choice.three)

    def ml_closing_weight(self, base_i: int, base_j: int) -> float:
        if not self.hard.allows(base_i, base_j, LoopContext.MB_LOOP):
            return 0.0
        choice = self.policy.ml_closing_choices(base_i, base_j)[0]
        return self.boltzmann_model.exp_ml_closing(base_i, base_j, choice.five, choice.three)

    def ml_unpaired_weight(self, start: int, end: int) -> float:
        """Weight of leaving `start..end` unpaired in a multiloop (1 for empty ranges)."""
        if end < start:
            return 1.0
        if not self.hard.unpaired_range_ok(start, end):
            return 0.0
        return self.boltzmann_model.exp_ml_unpaired(end - start + 1)

    def hairpin_weight(self, base_i: int, base_j: int) -> float:
        if not self.hard.allows(base_i, base_j, LoopContext.HP_LOOP):
            return 0.0
        if not self.hard.unpaired_range_ok(base_i + 1, base_j - 1):
            return 0.0
        return self.boltzmann_model.exp_hairpin(base_i, base_j)

    def interior_terms(self, base_i: int, base_j: int, state: PartitionState) -> Iterator[Tuple[int, int, float]]:
        """
        Yields `(p, q, weight)` for every interior loop closed by `(i, j)`.

        The weight is the scaled loop factor times `qb[p, q]`, without the
        covariation factor of `(i, j)`.
        """
        hard = self.hard
        if not hard.allows(base_i, base_j, LoopContext.INT_LOOP):
            return
        turn = self.config.min_loop_size
        max_loop = self.config.max_loop_size
        scale = state.scale
        qb = state.qb
        for p in range(base_i + 1, min(base_i + max_loop + 1, base_j - turn - 2) + 1):
            u1 = p - base_i - 1
            if u1 and not hard.unpaired_ok(p - 1):
                break
            min_q = max(p + turn + 1, base_j - 1 - (max_loop - u1))
            for q in range(base_j - 1, min_q - 1, -1):
                if q < base_j - 1 and not hard.unpaired_ok(q + 1):
                    break
                inner = qb.get(p, q)
                if inner == 0.0 or not hard.allows(p, q, LoopContext.INT_LOOP_ENC):
                    continue
                u2 = base_j - q - 1
                weight = inner * self.boltzmann_model.exp_interior(base_i, base_j, p, q) * scale[u1 + u2 + 2]
                if weight > 0.0:
                    yield p, q, weight

    def multiloop_terms(self, base_i: int, base_j: int, state: PartitionState) -> Iterator[Tuple[int, float]]:
        """
        Yields `(u, weight)` for every split of a multiloop closed by `(i, j)`.

        The weight is `qm[i+1, u-1] · qm1[u, j-1]`, without the closing factor.
        """
        turn = self.config.min_loop_size
        qm, qm1 = state.qm, state.qm1
        for u in range(base_i + turn + 3, base_j - turn - 1):
            weight = qm.get(base_i + 1, u - 1) * qm1.get(u, base_j - 1)
            if weight > 0.0:
                yield u, weight

    # ---------- Circular exterior loop ----------

    def circular_hairpin_terms(self, state: PartitionState) -> Iterator[Tuple[int, int, float]]:
        """
        Yields `(i, j, weight)` for every pair closing the circular exterior loop alone.

        The weight is `qb[i, j]` times the scaled weight of the loop running
        from `j` across the `n -> 1` junction back to `i`.
        """
        n = state.seq_len
        turn = self.config.min_loop_size
        hard = self.hard
        model = self.boltzmann_model
        for i in range(1, n + 1):
            for j in range(i + turn + 1, n + 1):
                inner = state.qb.get(i, j)
                if inner == 0.0 or not hard.allows(i, j, LoopContext.EXT_LOOP):
                    continue
                if n - j + i - 1 < turn:
                    continue
                if not hard.unpaired_range_ok(j + 1, n) or not hard.unpaired_range_ok(1, i - 1):
                    continue
                weight = inner * model.weight(model.model.hairpin_circular(i, j)) * state.scale[n - j + i - 1]
                if weight > 0.0:
                    yield i, j, weight

    def circular_interior_terms(self, state: PartitionState) -> Iterator[Tuple[int, int, int, int, float]]:
        """
        Yields `(i, j, p, q, weight)` for every pair of pairs closing the circular exterior loop.

        The weight is `qb[i, j] · qb[p, q]` times the scaled weight of the
        two unpaired stretches `j+1..p-1` and `q+1..n, 1..i-1`.
        """
        n = state.seq_len
        turn = self.config.min_loop_size
        max_loop = self.config.max_loop_size
        hard = self.hard
        model = self.boltzmann_model
        qb = state.qb
        for i in range(1, n + 1):
            if not hard.unpaired_range_ok(1, i - 1):
                break
            for j in range(i + turn + 1, n + 1):
                outer = qb.get(i, j)
                if outer == 0.0 or not hard.allows(i, j, LoopContext.EXT_LOOP):
                    continue
                for p in range(j + 1, min(j + max_loop + 1, n - turn - 1) + 1):
                    u1 = p - j - 1
                    if u1 and not hard.unpaired_ok(p - 1):
                        break
                    for q in range(n, p + turn, -1):
                        u2 = i - 1 + n - q
                        if u1 + u2 > max_loop:
                            break
                        if q < n and not hard.unpaired_ok(q + 1):
                            break
                        inner = qb.get(p, q)
                        if inner == 0.0 or not hard.allows(p, q, LoopContext.EXT_LOOP):
                            continue
                        loop = model.weight(model.model.interior_circular(i, j, p, q))
                        weight = outer * inner * loop * state.scale[u1 + u2]
                        if weight > 0.0:
                            yield i, j, p, q, weight

    def circular_multiloop_terms(self, state: PartitionState) -> Iterator[Tuple[int, int, float]]:
        """
        Yields `(k, u, weight)` for every circular exterior loop with three or more branches.

        The weight is `qm[1, k] · qm1[k+1, u] · qm1[u+1, n]` times the
        multiloop closing penalty; `k+1` and `u+1` are the starts of the last
        two branches.
        """
        n = state.seq_len
        qm, qm1 = state.qm, state.qm1
        closing = self.boltzmann_model.bz.ml_closing ** self.boltzmann_model.model.n_seq
        for k in range(1, n - 1):
            head = qm.get(1, k)
            if head == 0.0:
                continue
            for u in range(k + 1, n):
                weight = head * qm1.get(k + 1, u) * qm1.get(u + 1, n) * closing
                if weight > 0.0:
                    yield k, u, weight

    def circular_open_weight(self, state: PartitionState) -> float:
        """Scaled weight of the circle with no pair at all."""
        n = state.seq_len
        return state.scale[n] if self.hard.unpaired_range_ok(1, n) else 0.0

    def _fill_circular(self, state: PartitionState) -> None:
        """Sums the closures of the circular exterior loop into `state.circular`."""
        state.circular = CircularPartition(
            z_open=self.circular_open_weight(state),
            z_hairpin=sum(w for _, _, w in self.circular_hairpin_terms(state)),
            z_interior=sum(w for _, _, _, _, w in self.circular_interior_terms(state)),
            z_multi=sum(w for _, _, w in self.circular_multiloop_terms(state)),
        )
        logger.info(
            f"Circular closures: open={state.circular.z_open:.4g}, hairpin={state.circular.z_hairpin:.4g}, "
            f"interior={state.circular.z_interior:.4g}, multi={state.circular.z_multi:.4g}"
        )

    # ---------- Inside pass ----------

    def fill_all_matrices(self, mfe_kcal: float) -> PartitionState:
        """
        Executes the inside recursions.

        Parameters
        ----------
        mfe_kcal : float
            Per-sequence minimum free energy, used to choose the scale factor.

        Returns
        -------
        PartitionState
            Filled inside arrays.

        Raises
        ------
        NumericOverflow
            If the partition function is not finite or vanishes.
        """
        start_time = time.perf_counter()
        n = self.boltzmann_model.model.length
        turn = self.config.min_loop_size
        sfact = self.config.pf_scale_factor

        pf_scale = estimate_pf_scale(mfe_kcal, self.kt_kcal, n, sfact)
        state = make_pf_state(n, pf_scale)
        scale = state.scale

        logger.info("=" * 60)
        logger.info(f"Alignment partition function: L={n}, pf_scale={pf_scale:.6f}")
        logger.info("=" * 60)

        if self.policy.allows_gquad:
            state.gquad = build_gquad_weights(self.boltzmann_model, self.hard, scale)

        show_progress = self.config.verbose or logger.isEnabledFor(logging.INFO)
        span_iter = tqdm(range(turn + 1, n), desc="Alifold PF", leave=True, disable=not show_progress)

        for d in span_iter:
            for i in range(1, n - d + 1):
                j = i + d
                self._fill_qb_cell(i, j, state)
                self._fill_qm1_cell(i, j, state)
                self._fill_qm_cell(i, j, state)

        self._fill_exterior(state)
        if self.config.circular:
            self._fill_circular(state)

        z = state.partition_function
        if not math.isfinite(z):
            raise NumericOverflow(
                f"Partition function overflow (pf_scale={pf_scale:.6g}); retry with a larger scale factor.",
                suggested_scale_factor=sfact * SCALE_RETRY_STEP,
            )
        if z <= 0.0:
            raise NumericOverflow(
                f"Partition function underflow (pf_scale={pf_scale:.6g}); retry with a smaller scale factor.",
                suggested_scale_factor=sfact / SCALE_RETRY_STEP,
            )

        elapsed = time.perf_counter() - start_time
        logger.info(f"Partition function fill completed in {elapsed:.2f}s")

        return state

    def _fill_qb_cell(self, i: int, j: int, state: PartitionState) -> None:
        factor = self.pair_factor(i, j)
        if factor == 0.0:
            return
        scale = state.scale

        # --- Case 1: hairpin ---
        total = self.hairpin_weight(i, j) * scale[j - i + 1]

        # --- Case 2: stack, bulge, interior loop ---
        for _, _, weight in self.interior_terms(i, j, state):
            total += weight

        # --- Case 3: multiloop ---
        closing = self.ml_closing_weight(i, j)
        if closing > 0.0:
            ml_sum = 0.0
            for _, weight in self.multiloop_terms(i, j, state):
                ml_sum += weight
            total += ml_sum * closing * scale[2]

        state.qb.set(i, j, total * factor)

    def _fill_qm1_cell(self, i: int, j: int, state: PartitionState) -> None:
        """`qm1[i, j] = Σ_l qb[i, l] · stem(i, l) · unpaired(l+1..j)`."""
        turn = self.config.min_loop_size
        scale = state.scale
        qb = state.qb
        total = 0.0
        for l in range(i + turn + 1, j + 1):
            inner = qb.get(i, l)
            if inner == 0.0:
                continue
            tail = self.ml_unpaired_weight(l + 1, j)
            if tail == 0.0:
                continue
            total += inner * self.ml_stem_weight(i, l) * tail * scale[j - l]
        state.qm1.set(i, j, total)

    def _fill_qm_cell(self, i: int, j: int, state: PartitionState) -> None:
        """`qm[i, j] = Σ_k (unpaired(i..k-1) + qm[i, k-1]) · qm1[k, j]`."""
        scale = state.scale
        qm, qm1 = state.qm, state.qm1
        total = 0.0
        for k in range(i, j - self.config.min_loop_size):
            branch = qm1.get(k, j)
            if branch == 0.0:
                continue
            prefix = self.ml_unpaired_weight(i, k - 1) * scale[k - i]
            if k > i:
                prefix += qm.get(i, k - 1)
            total += prefix * branch
        qm.set(i, j, total)

    def _fill_exterior(self, state: PartitionState) -> None:
        """Fills `q5` (prefixes) and `q3` (suffixes) of the exterior loop."""
        n = state.seq_len
        turn = self.config.min_loop_size
        scale = state.scale
        qb = state.qb
        q5, q3 = state.q5, state.q3
        gquad = state.gquad

        for j in range(1, n + 1):
            total = q5[j - 1] * self.exterior_unpaired_weight(j) * scale[1]
            for i in range(j - turn - 1, 0, -1):
                inner = qb.get(i, j)
                if inner > 0.0:
                    total += q5[i - 1] * inner * self.exterior_stem_weight(i, j)
                if gquad is not None:
                    total += q5[i - 1] * gquad.get(i, j)
            q5[j] = total

        for i in range(n, 0, -1):
            total = q3[i + 1] * self.exterior_unpaired_weight(i) * scale[1]
            for j in range(i + turn + 1, n + 1):
                inner = qb.get(i, j)
                if inner > 0.0:
                    total += inner * self.exterior_stem_weight(i, j) * q3[j + 1]
                if gquad is not None:
                    total += gquad.get(i, j) * q3[j + 1]
            q3[i] = total

    def ensemble_energy(self, state: PartitionState) -> float:
        """Per-sequence ensemble free energy `-kT · (ln Z + n · ln pf_scale)` in kcal/mol."""
        z = state.partition_function
        return -(math.log(z) + state.seq_len * math.log(state.pf_scale)) * self.kt_kcal

