from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from rna_ali_fold.energies.energy_types import INF
from rna_ali_fold.folding.fold_config import AliFoldConfig, DangleModel

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class StemChoice:
    """
    One way of attaching a stem in an exterior loop or multiloop segment.

    Attributes
    ----------
    stem : Tuple[int, int]
        The pair closing the stem.
    five, three : Optional[int]
        Columns whose bases act as 5' and 3' flanks, or None.
    consumed : Tuple[int, ...]
        Unpaired columns absorbed by this choice (mixed dangles only).
    prefix : int
        Exterior loop only: the `f5` index the remaining prefix continues from.
    rank : int
        Tie-break rank; lower wins on equal energy.
    label : str
        Human-readable variant name.
    """
    stem: Tuple[int, int]
    five: Optional[int]
    three: Optional[int]
    consumed: Tuple[int, ...] = ()
    prefix: int = 0
    rank: int = 0
    label: str = "none"


@dataclass(frozen=True, slots=True)
class ClosingChoice:
    """
    One way of closing a multiloop with the pair `(i, j)`.

    The branches lie in the segment `left..right`, which is split into two
    non-empty multiloop segments `[left, u - 1]` and `[u, right]`.
    """
    five: Optional[int]
    three: Optional[int]
    consumed: Tuple[int, ...]
    left: int
    right: int
    label: str = "none"


@dataclass(frozen=True, slots=True)
class LoopStem:
    """
    A stem as seen from a loop in a fixed structure, used by the energy evaluator.

    Attributes
    ----------
    pair : Tuple[int, int]
        The stem's terminal pair, oriented from the loop.
    five_neighbor, three_neighbor : Optional[int]
        Columns immediately 5' and 3' of the stem inside the loop, None if
        they fall outside the alignment.
    five_free, three_free : bool
        True if the neighbouring column is unpaired within the loop.
    """
    pair: Tuple[int, int]
    five_neighbor: Optional[int]
    three_neighbor: Optional[int]
    five_free: bool
    three_free: bool


StemEnergyFn = Callable[[LoopStem, Optional[int], Optional[int]], float]


class DanglePolicy:
    """
    Base strategy for the treatment of unpaired bases next to stems.

    A policy is chosen once per fold. It enumerates the stem variants the MFE
    recursions minimise over, supplies the flanks used by the partition
    function, and scores the stems of a loop in a fixed structure.
    """
    model: DangleModel = DangleModel.NONE
    allows_gquad: bool = False

    # ---------- MFE recursions ----------

    def exterior_choices(self, base_i: int, base_j: int, seq_len: int) -> Sequence[StemChoice]:
        raise NotImplementedError

    def ml_stem_choices(self, base_i: int, base_j: int) -> Sequence[StemChoice]:
        raise NotImplementedError

    def ml_closing_choices(self, base_i: int, base_j: int) -> Sequence[ClosingChoice]:
        raise NotImplementedError

    # ---------- Partition function ----------

    def ensemble_policy(self) -> DanglePolicy:
        """Policy used by the partition function; identical unless overridden."""
        return self

    # ---------- Fixed-structure evaluation ----------

    def loop_stems_energy(self, stems: Sequence[LoopStem], stem_energy: StemEnergyFn) -> float:
        raise NotImplementedError

    def multiloop_energy(
        self,
        closing: LoopStem,
        inner: Sequence[LoopStem],
        closing_energy: StemEnergyFn,
        stem_energy: StemEnergyFn,
    ) -> float:
        """Energy of the closing stem plus all branches of a multiloop."""
        return (
            closing_energy(closing, *self._fixed_flanks(closing))
            + self.loop_stems_energy(inner, stem_energy)
        )

    def _fixed_flanks(self, stem: LoopStem) -> Tuple[Optional[int], Optional[int]]:
        raise NotImplementedError


class NoDangle(DanglePolicy):
    """Dangle model 0: stems receive no flanking contributions."""
    model = DangleModel.NONE

    def exterior_choices(self, base_i, base_j, seq_len):
        return (StemChoice((base_i, base_j), None, None, prefix=base_i - 1, rank=1),)

    def ml_stem_choices(self, base_i, base_j):
        return (StemChoice((base_i, base_j), None, None, rank=1),)

    def ml_closing_choices(self, base_i, base_j):
        return (ClosingChoice(None, None, (), base_i + 1, base_j - 1),)

    def _fixed_flanks(self, stem):
        return None, None

    def loop_stems_energy(self, stems, stem_energy):
        return sum(stem_energy(st, None, None) for st in stems)


class DoubleDangle(DanglePolicy):
    """Dangle model 2: both neighbouring bases always contribute, paired or not."""
    model = DangleModel.DOUBLE

    def exterior_choices(self, base_i, base_j, seq_len):
        five = base_i - 1 if base_i > 1 else None
        three = base_j + 1 if base_j < seq_len else None
        return (StemChoice((base_i, base_j), five, three, prefix=base_i - 1, rank=1, label="double"),)

    def ml_stem_choices(self, base_i, base_j):
        return (StemChoice((base_i, base_j), base_i - 1, base_j + 1, rank=1, label="double"),)

    def ml_closing_choices(self, base_i, base_j):
        return (ClosingChoice(base_j - 1, base_i + 1, (), base_i + 1, base_j - 1, label="double"),)

    def _fixed_flanks(self, stem):
        return stem.five_neighbor, stem.three_neighbor

    def loop_stems_energy(self, stems, stem_energy):
        return sum(stem_energy(st, st.five_neighbor, st.three_neighbor) for st in stems)


class MixedDangle(DanglePolicy):
    """
    Dangle models 1 and 3: an unpaired base dangles on at most one adjacent stem.

    Every stem may take its 5' neighbour, its 3' neighbour, both or neither,
    provided those neighbours are unpaired and not claimed by another stem.
    The partition function cannot express this exclusivity and falls back to
    `DoubleDangle`.
    """
    model = DangleModel.MIXED

    def exterior_choices(self, base_i, base_j, seq_len):
        choices = [StemChoice((base_i, base_j), None, None, prefix=base_i - 1, rank=1)]
        if base_i > 1:
            choices.append(StemChoice(
                (base_i, base_j), base_i - 1, None, (base_i - 1,), prefix=base_i - 2, rank=2, label="5'"
            ))
        choices.append(StemChoice(
            (base_i, base_j - 1), None, base_j, (base_j,), prefix=base_i - 1, rank=3, label="3'"
        ))
        if base_i > 1:
            choices.append(StemChoice(
                (base_i, base_j - 1), base_i - 1, base_j, (base_i - 1, base_j), prefix=base_i - 2, rank=4,
                label="both",
            ))
        return choices

    def ml_stem_choices(self, base_i, base_j):
        return (
            StemChoice((base_i, base_j), None, None, rank=1),
            StemChoice((base_i + 1, base_j), base_i, None, (base_i,), rank=1, label="5'"),
            StemChoice((base_i, base_j - 1), None, base_j, (base_j,), rank=1, label="3'"),
            StemChoice((base_i + 1, base_j - 1), base_i, base_j, (base_i, base_j), rank=1, label="both"),
        )

    def ml_closing_choices(self, base_i, base_j):
        return (
            ClosingChoice(None, None, (), base_i + 1, base_j - 1),
            ClosingChoice(base_j - 1, None, (base_j - 1,), base_i + 1, base_j - 2, label="5'"),
            ClosingChoice(None, base_i + 1, (base_i + 1,), base_i + 2, base_j - 1, label="3'"),
            ClosingChoice(base_j - 1, base_i + 1, (base_j - 1, base_i + 1), base_i + 2, base_j - 2, label="both"),
        )

    def ensemble_policy(self) -> DanglePolicy:
        logger.info("Mixed dangles are approximated by double dangles in the partition function")
        return DoubleDangle()

    def loop_stems_energy(self, stems, stem_energy):
        return _exclusive_dangle_chain(stems, stem_energy)

    def multiloop_energy(self, closing, inner, closing_energy, stem_energy):
        best = INF
        for use_five in (False, True):
            if use_five and not closing.five_free:
                continue
            for use_three in (False, True):
                if use_three and not closing.three_free:
                    continue
                five = closing.five_neighbor if use_five else None
                three = closing.three_neighbor if use_three else None
                branches = list(inner)
                # The closing pair's 3' flank is i + 1, shared with the first branch's 5' flank.
                if use_three and branches and branches[0].five_neighbor == three:
                    branches[0] = _block_five(branches[0])
                if use_five and branches and branches[-1].three_neighbor == five:
                    branches[-1] = _block_three(branches[-1])
                energy = closing_energy(closing, five, three) + _exclusive_dangle_chain(branches, stem_energy)
                if energy < best:
                    best = energy
        return best


class GquadAware(DanglePolicy):
    """Decorates a dangle policy with G-quadruplexes in the exterior loop."""

    def __init__(self, inner: DanglePolicy):
        self.inner = inner
        self.model = inner.model
        self.allows_gquad = True

    def exterior_choices(self, base_i, base_j, seq_len):
        return self.inner.exterior_choices(base_i, base_j, seq_len)

    def ml_stem_choices(self, base_i, base_j):
        return self.inner.ml_stem_choices(base_i, base_j)

    def ml_closing_choices(self, base_i, base_j):
        return self.inner.ml_closing_choices(base_i, base_j)

    def ensemble_policy(self):
        return GquadAware(self.inner.ensemble_policy())

    def loop_stems_energy(self, stems, stem_energy):
        return self.inner.loop_stems_energy(stems, stem_energy)

    def multiloop_energy(self, closing, inner, closing_energy, stem_energy):
        return self.inner.multiloop_energy(closing, inner, closing_energy, stem_energy)


def _block_five(stem: LoopStem) -> LoopStem:
    return LoopStem(stem.pair, stem.five_neighbor, stem.three_neighbor, False, stem.three_free)


def _block_three(stem: LoopStem) -> LoopStem:
    return LoopStem(stem.pair, stem.five_neighbor, stem.three_neighbor, stem.five_free, False)


def _exclusive_dangle_chain(stems: Sequence[LoopStem], stem_energy: StemEnergyFn) -> float:
    """
    Minimise stem energies over dangle assignments along a chain of stems.

    An unpaired column shared by two consecutive stems (the 3' neighbour of
    one is the 5' neighbour of the next) may be used by at most one of them.
    The state carried between stems is whether the previous stem claimed the
    shared column.
    """
    if not stems:
        return 0
    states: Dict[bool, float] = {False: 0}
    for idx, stem in enumerate(stems):
        nxt = stems[idx + 1] if idx + 1 < len(stems) else None
        new_states: Dict[bool, float] = {}
        for claimed, acc in states.items():
            five_opts: List[Optional[int]] = [None]
            if stem.five_free and not claimed:
                five_opts.append(stem.five_neighbor)
            three_opts: List[Optional[int]] = [None]
            if stem.three_free:
                three_opts.append(stem.three_neighbor)
            for five in five_opts:
                for three in three_opts:
                    energy = acc + stem_energy(stem, five, three)
                    shares = three is not None and nxt is not None and nxt.five_neighbor == three
                    if energy < new_states.get(shares, INF):
                        new_states[shares] = energy
        states = new_states

    return min(states.values())


def make_dangle_policy(config: AliFoldConfig) -> DanglePolicy:
    """
    Select the dangle strategy for a fold.

    Parameters
    ----------
    config : AliFoldConfig
        Model configuration.

    Returns
    -------
    DanglePolicy
        `NoDangle`, `MixedDangle` or `DoubleDangle`, wrapped in
        `GquadAware` when G-quadruplexes are enabled.
    """
    if config.dangles == DangleModel.NONE:
        policy: DanglePolicy = NoDangle()
    elif config.dangles == DangleModel.DOUBLE:
        policy = DoubleDangle()
    else:
        if config.dangles == DangleModel.MIXED_COAX:
            logger.info("Coaxial stacking is not modelled; dangle model 3 is folded as model 1")
        policy = MixedDangle()

    if config.gquad:
        policy = GquadAware(policy)

    return policy
