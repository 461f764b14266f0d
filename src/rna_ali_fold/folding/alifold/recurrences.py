from __future__ import annotations
from dataclasses import dataclass
import math
import time
import logging

from tqdm import tqdm

from rna_ali_fold.energies.energy_model import AlignmentEnergyModel
from rna_ali_fold.energies.energy_types import INF
from rna_ali_fold.folding.alifold.back_pointer import AliFoldBacktrackOp, AliFoldBackPointer
from rna_ali_fold.folding.alifold.fold_state import AliFoldState
from rna_ali_fold.folding.dangles import DanglePolicy
from rna_ali_fold.folding.fold_config import AliFoldConfig
from rna_ali_fold.folding.gquad import build_gquad_table
from rna_ali_fold.rules.constraints import HardConstraints, LoopContext, SoftConstraints
from rna_ali_fold.rules.covariation import CovariationMatrix

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AliFoldEngine:
    """
    Fills the MFE arrays of a consensus fold over an alignment.

    All loop energies are summed over the alignment rows; every pair `(i, j)`
    additionally receives the covariation adjustment `-pscore(i, j) · N`.

    Attributes
    ----------
    energy_model : AlignmentEnergyModel
        Row-summed loop energies.
    covariation : CovariationMatrix
        Admissible pairs and their covariation scores.
    hard : HardConstraints
        Loop-context masks and unpairing permissions.
    soft : SoftConstraints
        Exterior-loop unpaired bias.
    policy : DanglePolicy
        Dangle strategy, fixed for the fold.
    config : AliFoldConfig
        Model configuration.
    """
    energy_model: AlignmentEnergyModel
    covariation: CovariationMatrix
    hard: HardConstraints
    soft: SoftConstraints
    policy: DanglePolicy
    config: AliFoldConfig

    def fill_all_matrices(self, state: AliFoldState) -> None:
        """
        Executes the MFE recursions.

        Pair matrices `c` (and `cc`) and the multiloop matrix `fML` are filled
        span by span, so every cell is computed after all cells it contains.
        The exterior array `f5` is filled last.

        Parameters
        ----------
        state : AliFoldState
            The state object whose arrays are filled in place.
        """
        start_time = time.perf_counter()
        n = state.seq_len
        turn = self.config.min_loop_size

        logger.info("=" * 60)
        logger.info(f"Alignment MFE fill: L={n} columns, N={self.energy_model.n_seq} sequences")
        logger.info(f"Dangle model {int(self.policy.model)}, noLP={self.config.no_lonely_pairs}, gquad={self.policy.allows_gquad}")
        logger.info("=" * 60)

        if self.policy.allows_gquad:
            state.gquad = build_gquad_table(self.energy_model, self.hard)

        show_progress = self.config.verbose or logger.isEnabledFor(logging.INFO)
        span_iter = tqdm(range(turn + 1, n), desc="Alifold MFE", leave=True, disable=not show_progress)

        # Spans d = j - i; a pair needs at least `turn` enclosed columns.
        for d in span_iter:
            for i in range(1, n - d + 1):
                j = i + d

                # ---------- 1. Pair matrix ----------
                self._fill_c_cell(i, j, state)

                # ---------- 2. Multiloop segment matrix ----------
                self._fill_fml_cell(i, j, state)

        # ---------- 3. Exterior loop ----------
        self._fill_f5(state)

        elapsed = time.perf_counter() - start_time
        logger.info(f"MFE fill completed in {elapsed:.2f}s")
        if math.isfinite(state.f5[n]):
            logger.info(f"f5[{n}] = {state.f5[n] / (100.0 * self.energy_model.n_seq):.2f} kcal/mol")

    # ---------- Pair matrix ----------

    def _fill_c_cell(self, i: int, j: int, state: AliFoldState) -> None:
        """
        Fills the pair cell `c[i, j]` (and `cc[i, j]` without lonely pairs).

        Notes
        -----
        Candidates are tried in the order hairpin, interior loops (`p`
        increasing, `q` decreasing), multiloop closing variants; on equal
        energy the earlier candidate is kept.
        """
        pscore = self.covariation.pscore(i, j)
        if pscore is None or not self.hard.pair_allowed(i, j):
            return

        model = self.energy_model
        hard = self.hard
        c_matrix = state.c_matrix
        fml_matrix = state.fml_matrix
        turn = self.config.min_loop_size
        max_loop = self.config.max_loop_size

        best_energy = INF
        best_rank = math.inf
        best_back_ptr = AliFoldBackPointer()

        # --- Case 1: hairpin ---
        if hard.allows(i, j, LoopContext.HP_LOOP) and hard.unpaired_range_ok(i + 1, j - 1):
            cand_energy = model.hairpin(i, j)
            best_energy, best_rank, best_back_ptr = self._compare_candidates(
                cand_energy, 0, AliFoldBackPointer(operation=AliFoldBacktrackOp.HAIRPIN),
                best_energy, best_rank, best_back_ptr,
            )

        # --- Case 2: stack, bulge, interior loop ---
        if hard.allows(i, j, LoopContext.INT_LOOP):
            for p in range(i + 1, min(i + max_loop + 1, j - turn - 2) + 1):
                u1 = p - i - 1
                if u1 and not hard.unpaired_ok(p - 1):
                    break
                min_q = max(p + turn + 1, j - 1 - (max_loop - u1))
                for q in range(j - 1, min_q - 1, -1):
                    if q < j - 1 and not hard.unpaired_ok(q + 1):
                        break
                    inner = c_matrix.get(p, q)
                    if inner == INF or not hard.allows(p, q, LoopContext.INT_LOOP_ENC):
                        continue
                    loop_energy = model.interior(i, j, p, q)
                    if loop_energy == INF:
                        continue
                    best_energy, best_rank, best_back_ptr = self._compare_candidates(
                        loop_energy + inner, 1,
                        AliFoldBackPointer(operation=AliFoldBacktrackOp.INTERIOR, inner=(p, q)),
                        best_energy, best_rank, best_back_ptr,
                    )

        # --- Case 3: multiloop ---
        if hard.allows(i, j, LoopContext.MB_LOOP):
            for choice in self.policy.ml_closing_choices(i, j):
                if not all(hard.unpaired_ok(k) for k in choice.consumed):
                    continue
                split_energy = INF
                split_u = None
                for u in range(choice.left + turn + 2, choice.right - turn):
                    cand = fml_matrix.get(choice.left, u - 1) + fml_matrix.get(u, choice.right)
                    if cand < split_energy:
                        split_energy, split_u = cand, u
                if split_u is None:
                    continue
                cand_energy = (
                    split_energy
                    + model.ml_closing(i, j, choice.five, choice.three)
                    + model.ml_unpaired(len(choice.consumed))
                )
                best_energy, best_rank, best_back_ptr = self._compare_candidates(
                    cand_energy, 2,
                    AliFoldBackPointer(
                        operation=AliFoldBacktrackOp.MULTI,
                        segments=((choice.left, split_u - 1), (split_u, choice.right)),
                        note=choice.label,
                    ),
                    best_energy, best_rank, best_back_ptr,
                )

        if best_energy == INF:
            return

        bonus = pscore * model.n_seq
        total = best_energy - bonus

        if not self.config.no_lonely_pairs:
            c_matrix.set(i, j, total)
            state.c_back_ptr.set(i, j, best_back_ptr)
            return

        # --- No lonely pairs: c[i,j] must stack on an inner pair ---
        state.cc_matrix.set(i, j, total)
        state.cc_back_ptr.set(i, j, best_back_ptr)
        if j - i - 3 < turn:
            return
        inner_cc = state.cc_matrix.get(i + 1, j - 1)
        if inner_cc == INF or not hard.allows(i, j, LoopContext.INT_LOOP):
            return
        if not hard.allows(i + 1, j - 1, LoopContext.INT_LOOP_ENC):
            return
        stack_energy = model.interior(i, j, i + 1, j - 1)
        if stack_energy == INF:
            return
        c_matrix.set(i, j, stack_energy + inner_cc - bonus)
        state.c_back_ptr.set(i, j, AliFoldBackPointer(operation=AliFoldBacktrackOp.STACK_ONLY, inner=(i + 1, j - 1)))

    # ---------- Multiloop segments ----------

    def _fill_fml_cell(self, i: int, j: int, state: AliFoldState) -> None:
        """
        Fills `fML[i, j]`: a multiloop segment holding at least one branch.

        Notes
        -----
        Candidates, in tie-break order:
        1. `fML[i+1, j] + MLbase`: column `i` unpaired.
        2. `fML[i, j-1] + MLbase`: column `j` unpaired.
        3. A single branch in any dangle variant of the policy.
        4. `fML[i, k-1] + fML[k, j]`: two or more branches.
        """
        model = self.energy_model
        hard = self.hard
        fml_matrix = state.fml_matrix
        c_matrix = state.c_matrix
        turn = self.config.min_loop_size
        unpaired_one = model.ml_unpaired(1)

        best_energy = INF
        best_rank = math.inf
        best_back_ptr = AliFoldBackPointer()

        if hard.unpaired_ok(i):
            best_energy, best_rank, best_back_ptr = self._compare_candidates(
                fml_matrix.get(i + 1, j) + unpaired_one, 0,
                AliFoldBackPointer(operation=AliFoldBacktrackOp.ML_UNPAIRED_LEFT),
                best_energy, best_rank, best_back_ptr,
            )
        if hard.unpaired_ok(j):
            best_energy, best_rank, best_back_ptr = self._compare_candidates(
                fml_matrix.get(i, j - 1) + unpaired_one, 0,
                AliFoldBackPointer(operation=AliFoldBacktrackOp.ML_UNPAIRED_RIGHT),
                best_energy, best_rank, best_back_ptr,
            )

        for choice in self.policy.ml_stem_choices(i, j):
            base_a, base_b = choice.stem
            if base_b - base_a - 1 < turn:
                continue
            stem_c = c_matrix.get(base_a, base_b)
            if stem_c == INF or not hard.allows(base_a, base_b, LoopContext.MB_LOOP_ENC):
                continue
            if not all(hard.unpaired_ok(k) for k in choice.consumed):
                continue
            cand_energy = (
                stem_c
                + model.ml_stem(base_a, base_b, choice.five, choice.three)
                + model.ml_unpaired(len(choice.consumed))
            )
            best_energy, best_rank, best_back_ptr = self._compare_candidates(
                cand_energy, 1,
                AliFoldBackPointer(operation=AliFoldBacktrackOp.ML_STEM, inner=choice.stem, note=choice.label),
                best_energy, best_rank, best_back_ptr,
            )

        for k in range(i + turn + 2, j - turn):
            cand_energy = fml_matrix.get(i, k - 1) + fml_matrix.get(k, j)
            best_energy, best_rank, best_back_ptr = self._compare_candidates(
                cand_energy, 2,
                AliFoldBackPointer(operation=AliFoldBacktrackOp.ML_SPLIT, split_k=k),
                best_energy, best_rank, best_back_ptr,
            )

        if best_energy < INF:
            fml_matrix.set(i, j, best_energy)
            state.fml_back_ptr.set(i, j, best_back_ptr)

    # ---------- Exterior loop ----------

    def unpaired_cost(self, base_k: int) -> float:
        """Cost of leaving column `k` unpaired in the exterior loop."""
        if not self.hard.unpaired_ok(base_k):
            return INF
        return self.soft.unpaired_energy(base_k, self.energy_model.n_seq)

    def _fill_f5(self, state: AliFoldState) -> None:
        """
        Fills the exterior array `f5[0..n]`.

        Notes
        -----
        For every end `j`, the candidates are the unpaired column `j`, then
        for each start `i` (descending) the policy's stem variants, then a
        G-quadruplex `i..j` when enabled. Ties keep the lowest rank:
        unpaired, no dangle, 5', 3', both, G-quadruplex.
        """
        n = state.seq_len
        model = self.energy_model
        hard = self.hard
        c_matrix = state.c_matrix
        f5 = state.f5
        turn = self.config.min_loop_size
        gquad = state.gquad

        f5[0] = 0
        state.f5_back_ptr[0] = AliFoldBackPointer()

        for j in range(1, n + 1):
            best_energy = INF
            best_rank = math.inf
            best_back_ptr = AliFoldBackPointer()

            up_j = self.unpaired_cost(j)
            if up_j < INF:
                best_energy, best_rank, best_back_ptr = self._compare_candidates(
                    f5[j - 1] + up_j, 0,
                    AliFoldBackPointer(operation=AliFoldBacktrackOp.EXT_UNPAIRED, prefix=j - 1),
                    best_energy, best_rank, best_back_ptr,
                )

            for i in range(j - turn - 1, 0, -1):
                for choice in self.policy.exterior_choices(i, j, n):
                    base_a, base_b = choice.stem
                    if base_b - base_a - 1 < turn or choice.prefix < 0:
                        continue
                    stem_c = c_matrix.get(base_a, base_b)
                    if stem_c == INF or not hard.allows(base_a, base_b, LoopContext.EXT_LOOP):
                        continue
                    extra = 0
                    for k in choice.consumed:
                        extra += self.unpaired_cost(k)
                    if extra == INF:
                        continue
                    cand_energy = (
                        f5[choice.prefix]
                        + stem_c
                        + model.exterior_stem(base_a, base_b, choice.five, choice.three)
                        + extra
                    )
                    best_energy, best_rank, best_back_ptr = self._compare_candidates(
                        cand_energy, choice.rank,
                        AliFoldBackPointer(
                            operation=AliFoldBacktrackOp.EXT_STEM,
                            inner=choice.stem,
                            prefix=choice.prefix,
                            note=choice.label,
                        ),
                        best_energy, best_rank, best_back_ptr,
                    )

                if gquad is not None:
                    g_energy = gquad.get(i, j)
                    if g_energy < INF:
                        best_energy, best_rank, best_back_ptr = self._compare_candidates(
                            f5[i - 1] + g_energy, 5,
                            AliFoldBackPointer(operation=AliFoldBacktrackOp.EXT_GQUAD, inner=(i, j), prefix=i - 1),
                            best_energy, best_rank, best_back_ptr,
                        )

            f5[j] = best_energy
            state.f5_back_ptr[j] = best_back_ptr

    @staticmethod
    def _compare_candidates(
        cand_energy: float,
        cand_rank: float,
        cand_back_ptr: AliFoldBackPointer,
        best_energy: float,
        best_rank: float,
        best_back_ptr: AliFoldBackPointer,
    ) -> tuple[float, float, AliFoldBackPointer]:
        """
        Selects the best of two candidates based on energy and rank.

        A candidate replaces the incumbent only if its energy is strictly
        lower, or equal with a strictly lower rank. Among candidates of equal
        energy and rank the first one evaluated is kept.

        Returns
        -------
        tuple[float, float, AliFoldBackPointer]
            The winning candidate's (energy, rank, backpointer) tuple.
        """
        if cand_energy == INF:
            return best_energy, best_rank, best_back_ptr
        if (cand_energy < best_energy) or (cand_energy == best_energy and cand_rank < best_rank):
            return cand_energy, cand_rank, cand_back_ptr

        return best_energy, best_rank, best_back_ptr
