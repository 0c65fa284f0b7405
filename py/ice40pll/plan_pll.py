'''Divider search for the iCE40 SB_PLL40.

fin is divided by DIVR+1 to give the PFD frequency fdiv.  The feedback path
multiplies that by DIVF+1 to give the VCO, and the VCO is divided by 2**DIVQ to
give the output.  For the non-SIMPLE feedback paths the feedback is taken after
the DIVQ divider (and the shift register, for PHASE_AND_DELAY), so DIVQ only
moves the VCO, not the output.'''

from __future__ import annotations

from .pll_constants import *
from .plan_tools import Frequency, freq_to_str, reject

from dataclasses import dataclass
from enum import Enum
from fractions import Fraction
from math import ceil, floor
from typing import Generator, Tuple

__all__ = 'FeedbackPath', 'OutputSelect', 'PLLSettings', 'ShiftregDivMode', \
    'best_div', 'better_match', 'pll_search'

class FeedbackPath(Enum):
    SIMPLE = 'SIMPLE'
    DELAY = 'DELAY'
    PHASE_AND_DELAY = 'PHASE_AND_DELAY'
    EXTERNAL = 'EXTERNAL'

    def __str__(self) -> str:
        return self.value

class ShiftregDivMode(Enum):
    DIV_4 = 4
    DIV_7 = 7

    def __str__(self) -> str:
        return self.name

class OutputSelect(Enum):
    GENCLK = 'GENCLK'
    GENCLK_HALF = 'GENCLK_HALF'
    SHIFTREG_90DEG = 'SHIFTREG_90deg'
    SHIFTREG_0DEG = 'SHIFTREG_0deg'

    def __str__(self) -> str:
        return self.value

    def is_shiftreg(self) -> bool:
        return self in (OutputSelect.SHIFTREG_90DEG, OutputSelect.SHIFTREG_0DEG)

@dataclass(frozen=True)
class PLLSettings:
    # Reference frequency.
    fin: Frequency
    divr: int
    divf: int
    divq: int
    feedback: FeedbackPath
    # Shift register divide, only used with PHASE_AND_DELAY.
    shiftreg_div: int = 1

    def fdiv(self) -> Frequency:
        return self.fin / (self.divr + 1)

    def fvco(self) -> Frequency:
        # PHASE_AND_DELAY runs the VCO at 4 or 7 times the rate.
        if self.feedback == FeedbackPath.SIMPLE:
            return self.fdiv() * (self.divf + 1)
        elif self.feedback == FeedbackPath.PHASE_AND_DELAY:
            return self.fdiv() * (self.divf + 1) * (1 << self.divq) \
                * self.shiftreg_div
        else:
            return self.fdiv() * (self.divf + 1) * (1 << self.divq)

    def fout(self) -> Frequency:
        if self.feedback == FeedbackPath.PHASE_AND_DELAY:
            return self.fvco() / (1 << self.divq) / self.shiftreg_div
        else:
            return self.fvco() / (1 << self.divq)

    def is_valid(self) -> bool:
        return FDIV_MIN <= self.fdiv() <= FDIV_MAX \
            and FVCO_MIN <= self.fvco() <= FVCO_MAX \
            and FOUT_MIN <= self.fout() <= FOUT_MAX

    def error(self, fout_req: Frequency) -> Frequency:
        return abs(self.fout() - fout_req)

    def error_ratio(self, fout_req: Frequency) -> float:
        return float(self.error(fout_req) / fout_req)

    def report(self) -> str:
        if self.feedback == FeedbackPath.SIMPLE:
            feedback = 'SIMPLE'
        else:
            feedback = 'DELAY or PHASE_AND_DELAY'
        return f'''
input freq:   {freq_to_str(self.fin)}
output freq:  {freq_to_str(self.fout())}

feedback: {feedback}
PFD freq: {freq_to_str(self.fdiv())}
VCO freq: {freq_to_str(self.fvco())}

DIVR: {self.divr}
DIVF: {self.divf}
DIVQ: {self.divq}
'''

def better_match(a: PLLSettings | None, b: PLLSettings | None,
                 fout_req: Frequency) -> PLLSettings | None:
    '''Pick between two candidates.  a is only kept if it is strictly closer
    to the requested frequency, so on a tie the later candidate b wins.'''
    if a is None:
        return b
    if b is None:
        return a
    if a.error(fout_req) < b.error(fout_req):
        return a
    return b

def candidate_dividers(fin: Frequency, fout_req: Frequency,
                       feedback: FeedbackPath) \
        -> Generator[Tuple[int, int, int], None, None]:
    '''Generate (divr, divf, divq) in search order.  DIVF is the rounding
    down and then up of the exact value for the requested output.'''
    for divr in range(DIVR_MAX + 1):
        if feedback == FeedbackPath.SIMPLE:
            for divq in range(DIVQ_MAX + 1):
                divf_exact = fout_req * (divr + 1) * (1 << divq) / fin - 1
                yield divr, floor(divf_exact), divq
                yield divr, ceil(divf_exact), divq
        else:
            # The output doesn't depend on DIVQ, we just scan it to find a VCO
            # frequency in range.
            divf_exact = fout_req * (divr + 1) / fin - 1
            for divq in range(DIVQ_MAX + 1):
                yield divr, floor(divf_exact), divq
                yield divr, ceil(divf_exact), divq

def best_div(fin: Frequency, fout_req: Frequency, feedback: FeedbackPath,
             shiftreg_div: int = 1) -> PLLSettings | None:
    '''Search the dividers for a single feedback path.'''
    divf_max = DIVF_MAX if feedback == FeedbackPath.SIMPLE \
        else DIVF_MAX_NON_SIMPLE
    best = None
    for divr, divf, divq in candidate_dividers(fin, fout_req, feedback):
        if not 0 <= divf <= divf_max:
            continue
        settings = PLLSettings(fin, divr, divf, divq, feedback, shiftreg_div)
        if not settings.is_valid():
            continue
        best = better_match(best, settings, fout_req)
    return best

def pll_search(fin: Frequency, fout_req: Frequency,
               feedback: FeedbackPath | None = None,
               shiftreg_div: int = 1) -> PLLSettings | None:
    '''Find the valid settings giving the output closest to fout_req.

    With no feedback path requested, only SIMPLE and DELAY are tried.  Returns
    None if nothing valid exists.'''
    if not FIN_MIN <= fin <= FIN_MAX:
        reject(f'PLL input must be in range [{freq_to_str(FIN_MIN)}, '
               f'{freq_to_str(FIN_MAX)}], not {freq_to_str(fin)}')
    if not FOUT_MIN <= fout_req <= FOUT_MAX:
        reject(f'PLL output must be in range [{freq_to_str(FOUT_MIN)}, '
               f'{freq_to_str(FOUT_MAX)}], not {freq_to_str(fout_req)}')
    if shiftreg_div not in (1, 4, 7):
        reject(f'Shift register divide must be 1, 4 or 7, not {shiftreg_div}')

    if feedback is not None:
        return best_div(fin, fout_req, feedback, shiftreg_div)

    return better_match(
        best_div(fin, fout_req, FeedbackPath.SIMPLE, shiftreg_div),
        best_div(fin, fout_req, FeedbackPath.DELAY, shiftreg_div), fout_req)

def test_boundaries() -> None:
    def valid(fin: Fraction, divf: int, divq: int) -> bool:
        return PLLSettings(fin, 0, divf, divq, FeedbackPath.SIMPLE).is_valid()
    # fin = fdiv at both extremes.
    assert valid(133 * MHz, 4, 2)
    assert not valid(133 * MHz + Hz, 4, 2)
    assert valid(10 * MHz, 63, 2)
    assert not valid(10 * MHz - Hz, 63, 2)
    # VCO 533 = 13 * 41, 1066 = 13 * 82.
    assert valid(13 * MHz, 40, 1)
    assert not valid(13 * MHz - Hz, 40, 1)
    assert valid(13 * MHz, 81, 2)
    assert not valid(13 * MHz + Hz, 81, 2)
    # Output 275 = 11 * 50 / 2, 16 = 16 * 64 / 64.
    assert valid(11 * MHz, 49, 1)
    assert not valid(11 * MHz + Hz, 49, 1)
    assert valid(16 * MHz, 63, 6)
    assert not valid(16 * MHz - Hz, 63, 6)

def test_fdiv_limit_via_divr() -> None:
    s = PLLSettings(266 * MHz, 1, 4, 2, FeedbackPath.SIMPLE)
    assert s.fdiv() == 133 * MHz
    assert s.is_valid()
    s = PLLSettings(266 * MHz + 2 * Hz, 1, 4, 2, FeedbackPath.SIMPLE)
    assert not s.is_valid()

def test_frequencies() -> None:
    s = PLLSettings(12 * MHz, 0, 63, 4, FeedbackPath.SIMPLE)
    assert s.fdiv() == 12 * MHz
    assert s.fvco() == 768 * MHz
    assert s.fout() == 48 * MHz
    s = PLLSettings(12 * MHz, 0, 3, 2, FeedbackPath.PHASE_AND_DELAY, 4)
    assert s.fvco() == 768 * MHz
    assert s.fout() == 48 * MHz
    s = PLLSettings(12 * MHz, 0, 3, 1, FeedbackPath.PHASE_AND_DELAY, 7)
    assert s.fvco() == 672 * MHz
    assert s.fout() == 48 * MHz
    s = PLLSettings(12 * MHz, 0, 3, 4, FeedbackPath.EXTERNAL)
    assert s.fvco() == 768 * MHz
    assert s.fout() == 48 * MHz

def test_non_simple_invariance() -> None:
    fouts = set()
    for divq in range(DIVQ_MAX + 1):
        s = PLLSettings(12 * MHz, 0, 3, divq, FeedbackPath.DELAY)
        assert s.fout() == 48 * MHz
        if s.is_valid():
            fouts.add(s.fout())
    assert fouts == {48 * MHz}

def test_better_match() -> None:
    target = 48 * MHz
    a = PLLSettings(12 * MHz, 0, 63, 4, FeedbackPath.SIMPLE)
    b = PLLSettings(12 * MHz, 0, 3, 4, FeedbackPath.DELAY)
    assert better_match(None, None, target) is None
    assert better_match(a, None, target) is a
    assert better_match(None, b, target) is b
    # Exact tie, the later one wins.
    assert better_match(a, b, target) is b
    assert better_match(b, a, target) is a
    # Equal distance either side of the target.
    lo = PLLSettings(12 * MHz, 0, 62, 4, FeedbackPath.SIMPLE)
    hi = PLLSettings(12 * MHz, 0, 64, 4, FeedbackPath.SIMPLE)
    assert lo.error(target) == hi.error(target)
    assert better_match(lo, hi, target) is hi
    assert better_match(hi, lo, target) is lo
    # Strictly closer wins regardless of order.
    assert better_match(a, hi, target) is a
    assert better_match(hi, a, target) is a

def test_12_48() -> None:
    s = best_div(12 * MHz, 48 * MHz, FeedbackPath.SIMPLE)
    assert s is not None
    assert s.feedback == FeedbackPath.SIMPLE
    assert (s.divr, s.divf, s.divq) == (0, 63, 4)
    assert s.fout() == 48 * MHz
    assert s.is_valid()
    assert pll_search(12 * MHz, 48 * MHz, FeedbackPath.SIMPLE) == s
    # With no preference, DELAY gets exactly 48MHz too and wins the tie.
    s = pll_search(12 * MHz, 48 * MHz)
    assert s is not None
    assert s.error_ratio(48 * MHz) <= 0.01
    assert (s.feedback, s.divr, s.divf, s.divq) == \
        (FeedbackPath.DELAY, 0, 3, 4)

def test_last_tie_wins() -> None:
    # 66.625 * 8 = 533 and 66.625 * 16 = 1066, so two DIVQ values work.
    fin = Fraction('13.325') * MHz
    fout = Fraction('66.625') * MHz
    s = best_div(fin, fout, FeedbackPath.DELAY)
    assert s is not None
    assert (s.divr, s.divf, s.divq) == (0, 4, 4)
    assert s.fout() == fout
    s = best_div(fin, fout, FeedbackPath.SIMPLE)
    assert s is not None
    assert (s.divr, s.divf, s.divq) == (0, 79, 4)
    assert s.fout() == fout

def test_ceiling_wins_tie() -> None:
    # DIVF exact is 63.5, so 48MHz and 48.75MHz are equally far off.
    fout = Fraction('48.375') * MHz
    s = best_div(12 * MHz, fout, FeedbackPath.SIMPLE)
    assert s is not None
    assert (s.divr, s.divf, s.divq) == (0, 64, 4)
    assert s.error(fout) == PLLSettings(
        12 * MHz, 0, 63, 4, FeedbackPath.SIMPLE).error(fout)

def test_phase_and_delay() -> None:
    s = pll_search(12 * MHz, 48 * MHz, FeedbackPath.PHASE_AND_DELAY, 4)
    assert s is not None
    assert (s.divr, s.divf, s.divq) == (0, 3, 2)
    s = pll_search(12 * MHz, 48 * MHz, FeedbackPath.PHASE_AND_DELAY, 7)
    assert s is not None
    assert (s.divr, s.divf, s.divq) == (0, 3, 1)

def test_out_of_range() -> None:
    from .plan_tools import InvalidRequest
    import pytest
    with pytest.raises(InvalidRequest):
        pll_search(12 * MHz, Fraction('275.5') * MHz)
    with pytest.raises(InvalidRequest):
        pll_search(12 * MHz, 16 * MHz - Hz)
    with pytest.raises(InvalidRequest):
        pll_search(9 * MHz, 48 * MHz)
    with pytest.raises(InvalidRequest):
        pll_search(134 * MHz, 48 * MHz)
    with pytest.raises(InvalidRequest):
        pll_search(12 * MHz, 48 * MHz, FeedbackPath.PHASE_AND_DELAY, 5)

def test_always_valid() -> None:
    fins = [10 * MHz, 12 * MHz, 27 * MHz, 48 * MHz, 100 * MHz, 133 * MHz]
    fouts = [16 * MHz, 25 * MHz, 48 * MHz, Fraction(400, 3) * MHz,
             200 * MHz, 275 * MHz]
    for fin in fins:
        for fout in fouts:
            for feedback in FeedbackPath:
                s = pll_search(fin, fout, feedback, 4)
                if s is None:
                    continue
                assert s.is_valid(), s
                assert s.feedback == feedback
                assert 0 <= s.divr <= DIVR_MAX
                assert 0 <= s.divq <= DIVQ_MAX
                if feedback == FeedbackPath.SIMPLE:
                    assert 0 <= s.divf <= DIVF_MAX
                else:
                    assert 0 <= s.divf <= DIVF_MAX_NON_SIMPLE

def test_deterministic() -> None:
    fout = Fraction('24.75') * MHz
    assert pll_search(12 * MHz, fout) == pll_search(12 * MHz, fout)
