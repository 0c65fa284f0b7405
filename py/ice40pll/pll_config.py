'''Turn a divider search result into the SB_PLL40 parameter set.'''

from __future__ import annotations

from .pll_constants import *
from .plan_pll import FeedbackPath, OutputSelect, PLLSettings, \
    ShiftregDivMode, pll_search
from .plan_tools import Frequency, fail, freq_to_str, reject

import dataclasses

from dataclasses import dataclass
from enum import Enum
from fractions import Fraction

__all__ = 'Bits', 'DelayAdjust', 'PLLConfig', 'filter_range', \
    'report_config', 'reverse_config', 'single_output'

@dataclass(frozen=True)
class Bits:
    '''A fixed width unsigned value.'''
    value: int
    width: int

    def __post_init__(self) -> None:
        assert 0 <= self.value < 1 << self.width, f'{self.value} {self.width}'

    def __int__(self) -> int:
        return self.value
    def __str__(self) -> str:
        return f"{self.width}'b{self.value:0{self.width}b}"

class DelayAdjust(Enum):
    FIXED = 'FIXED'
    DYNAMIC = 'DYNAMIC'

    def __str__(self) -> str:
        return self.value

# SHIFTREG_DIV_MODE bit.  Not setting the mode means divide by 4.
SHIFTREG_DIV_BITS = {
    None: 0,
    ShiftregDivMode.DIV_4: 0,
    ShiftregDivMode.DIV_7: 1,
}

@dataclass(frozen=True)
class PLLConfig:
    '''Everything needed for an SB_PLL40 instance.  The field names are the
    primitive's parameter names, except for with_lock, which only controls
    whether the LOCK output is wired up.'''
    DIVR: Bits
    DIVF: Bits
    DIVQ: Bits
    FILTER_RANGE: Bits
    FEEDBACK_PATH: FeedbackPath
    DELAY_ADJUSTMENT_MODE_FEEDBACK: DelayAdjust
    FDA_FEEDBACK: Bits
    DELAY_ADJUSTMENT_MODE_RELATIVE: DelayAdjust
    FDA_RELATIVE: Bits
    SHIFTREG_DIV_MODE: Bits
    PLLOUT_SELECT: OutputSelect
    ENABLE_ICEGATE: bool
    with_lock: bool = False

    def parameters(self) -> dict[str, Bits | str | bool]:
        '''The primitive parameters, by name, in declaration order.'''
        result: dict[str, Bits | str | bool] = {}
        for f in dataclasses.fields(self):
            if f.name == 'with_lock':
                continue
            value = getattr(self, f.name)
            if isinstance(value, Enum):
                value = str(value)
            result[f.name] = value
        return result

    def is_dynamic_delay(self) -> bool:
        return self.DELAY_ADJUSTMENT_MODE_FEEDBACK == DelayAdjust.DYNAMIC \
            or self.DELAY_ADJUSTMENT_MODE_RELATIVE == DelayAdjust.DYNAMIC

def filter_range(fdiv: Frequency) -> int:
    for limit, code in FILTER_RANGES:
        if fdiv < limit:
            return code
    return FILTER_RANGE_TOP

def delay_adjust(fda: int | None, name: str) -> tuple[DelayAdjust, Bits]:
    if fda is None:
        return DelayAdjust.FIXED, Bits(0, FDA_WIDTH)
    if not 0 <= fda < 1 << FDA_WIDTH:
        reject(f'{name} must be in range [0, {(1 << FDA_WIDTH) - 1}], '
               f'not {fda}')
    return DelayAdjust.DYNAMIC, Bits(fda, FDA_WIDTH)

def single_output(fin: Frequency, fout: Frequency,
                  allowed_mismatch: float = ALLOWED_MISMATCH,
                  feedback: FeedbackPath | None = FeedbackPath.SIMPLE,
                  fda_feedback: int | None = None,
                  fda_relative: int | None = None,
                  shiftreg_div_mode: ShiftregDivMode | None = None,
                  pllout_select: OutputSelect = OutputSelect.GENCLK,
                  enable_icegate: bool = False,
                  with_lock: bool = False) -> PLLConfig:
    '''Configure the PLL for a single output clock.

    feedback=None lets the search choose between SIMPLE and DELAY.  The
    dynamic delay values fda_* switch the corresponding delay adjustment to
    DYNAMIC.  Raises InvalidRequest for impossible requests and PlanningFailed
    if the closest output is more than allowed_mismatch (relative) away.'''
    if feedback == FeedbackPath.PHASE_AND_DELAY \
       and not pllout_select.is_shiftreg():
        reject('if feedback path is PHASE_AND_DELAY, output select must be '
               'SHIFTREG_0deg or SHIFTREG_90deg')
    if shiftreg_div_mode is not None \
       and feedback != FeedbackPath.PHASE_AND_DELAY:
        reject('SHIFTREG_DIV_MODE can only be used in PHASE_AND_DELAY '
               'feedback mode')
    if pllout_select.is_shiftreg() \
       and feedback != FeedbackPath.PHASE_AND_DELAY:
        reject(f'{pllout_select} output selection can only be used with '
               'PHASE_AND_DELAY feedback mode')
    fb_mode, fb_delay = delay_adjust(fda_feedback, 'FDA_FEEDBACK')
    rel_mode, rel_delay = delay_adjust(fda_relative, 'FDA_RELATIVE')

    # The shift register divide is ignored except for PHASE_AND_DELAY.
    if shiftreg_div_mode is None:
        shiftreg_div = ShiftregDivMode.DIV_4.value
    else:
        shiftreg_div = shiftreg_div_mode.value

    solution = pll_search(fin, fout, feedback, shiftreg_div)
    if solution is None:
        fail(f'Could not find any PLL configuration for '
             f'fin={freq_to_str(fin)} fout={freq_to_str(fout)}')

    error = solution.error(fout) / fout
    if error > allowed_mismatch:
        fail(f'Could not find PLL configuration for fin={freq_to_str(fin)} '
             f'fout={freq_to_str(fout)} within {allowed_mismatch * 100}%\n'
             f'  best match is {float(error) * 100:.6g}% off:'
             f'{solution.report()}')

    assert solution.is_valid()

    return PLLConfig(
        DIVR = Bits(solution.divr, DIVR_WIDTH),
        DIVF = Bits(solution.divf, DIVF_WIDTH),
        DIVQ = Bits(solution.divq, DIVQ_WIDTH),
        FILTER_RANGE = Bits(filter_range(solution.fdiv()), FILTER_RANGE_WIDTH),
        FEEDBACK_PATH = feedback if feedback is not None
            else solution.feedback,
        DELAY_ADJUSTMENT_MODE_FEEDBACK = fb_mode,
        FDA_FEEDBACK = fb_delay,
        DELAY_ADJUSTMENT_MODE_RELATIVE = rel_mode,
        FDA_RELATIVE = rel_delay,
        SHIFTREG_DIV_MODE = Bits(SHIFTREG_DIV_BITS[shiftreg_div_mode],
                                 SHIFTREG_DIV_MODE_WIDTH),
        PLLOUT_SELECT = pllout_select,
        ENABLE_ICEGATE = enable_icegate,
        with_lock = with_lock)

def reverse_config(config: PLLConfig, fin: Frequency) -> PLLSettings:
    '''Recover the divider settings a configuration was built from.'''
    shiftreg_div = 1
    if config.FEEDBACK_PATH == FeedbackPath.PHASE_AND_DELAY:
        shiftreg_div = 7 if config.SHIFTREG_DIV_MODE.value else 4
    return PLLSettings(fin, config.DIVR.value, config.DIVF.value,
                       config.DIVQ.value, config.FEEDBACK_PATH, shiftreg_div)

def report_config(config: PLLConfig, fin: Frequency,
                  fout: Frequency | None = None,
                  verbose: bool = False) -> None:
    settings = reverse_config(config, fin)
    achieved = settings.fout()
    print(f'Output {freq_to_str(achieved)}', end='')
    if fout is not None and achieved != fout:
        print(f' error {freq_to_str(achieved - fout, 4)}'
              f' ({settings.error_ratio(fout) * 1e6:.4g} ppm)', end='')
    print(f' {config.FEEDBACK_PATH} feedback')
    print(f'PFD: {freq_to_str(settings.fdiv())} = {freq_to_str(fin)} '
          f'/ {settings.divr + 1}')
    print(f'VCO: {freq_to_str(settings.fvco())}')
    print(f'DIVR={settings.divr} DIVF={settings.divf} DIVQ={settings.divq} '
          f'FILTER_RANGE={config.FILTER_RANGE.value}')

    if verbose:
        print()
        for name, value in config.parameters().items():
            print(f'{name} = {value}')

def test_filter_range() -> None:
    assert filter_range(Fraction('16.999') * MHz) == 1
    assert filter_range(17 * MHz) == 2
    assert filter_range(Fraction('25.999') * MHz) == 2
    assert filter_range(26 * MHz) == 3
    assert filter_range(44 * MHz) == 4
    assert filter_range(66 * MHz) == 5
    assert filter_range(Fraction('100.999') * MHz) == 5
    assert filter_range(101 * MHz) == 6
    assert filter_range(133 * MHz) == 6
    assert filter_range(10 * MHz) == 1

def test_bits() -> None:
    import pytest
    assert str(Bits(5, 4)) == "4'b0101"
    assert int(Bits(127, 7)) == 127
    with pytest.raises(AssertionError):
        Bits(16, 4)
    with pytest.raises(AssertionError):
        Bits(-1, 3)

def test_12_48() -> None:
    config = single_output(12 * MHz, 48 * MHz)
    assert config.DIVR == Bits(0, 4)
    assert config.DIVF == Bits(63, 7)
    assert config.DIVQ == Bits(4, 3)
    assert config.FILTER_RANGE == Bits(1, 3)
    assert config.FEEDBACK_PATH == FeedbackPath.SIMPLE
    assert config.DELAY_ADJUSTMENT_MODE_FEEDBACK == DelayAdjust.FIXED
    assert config.DELAY_ADJUSTMENT_MODE_RELATIVE == DelayAdjust.FIXED
    assert config.FDA_FEEDBACK == Bits(0, 4)
    assert config.FDA_RELATIVE == Bits(0, 4)
    assert config.SHIFTREG_DIV_MODE == Bits(0, 1)
    assert config.PLLOUT_SELECT == OutputSelect.GENCLK
    assert not config.ENABLE_ICEGATE
    assert not config.with_lock
    settings = reverse_config(config, 12 * MHz)
    assert settings.is_valid()
    assert settings.fout() == 48 * MHz

def test_auto_feedback() -> None:
    config = single_output(12 * MHz, 48 * MHz, feedback=None)
    # DELAY matches exactly too, and wins the tie.
    assert config.FEEDBACK_PATH == FeedbackPath.DELAY
    assert (config.DIVR.value, config.DIVF.value, config.DIVQ.value) \
        == (0, 3, 4)

def test_parameters() -> None:
    config = single_output(12 * MHz, Fraction('24.75') * MHz,
                           fda_relative=9, enable_icegate=True,
                           with_lock=True)
    params = config.parameters()
    assert list(params) == [
        'DIVR', 'DIVF', 'DIVQ', 'FILTER_RANGE', 'FEEDBACK_PATH',
        'DELAY_ADJUSTMENT_MODE_FEEDBACK', 'FDA_FEEDBACK',
        'DELAY_ADJUSTMENT_MODE_RELATIVE', 'FDA_RELATIVE',
        'SHIFTREG_DIV_MODE', 'PLLOUT_SELECT', 'ENABLE_ICEGATE']
    assert params['FEEDBACK_PATH'] == 'SIMPLE'
    assert params['PLLOUT_SELECT'] == 'GENCLK'
    assert params['DELAY_ADJUSTMENT_MODE_FEEDBACK'] == 'FIXED'
    assert params['DELAY_ADJUSTMENT_MODE_RELATIVE'] == 'DYNAMIC'
    assert params['FDA_RELATIVE'] == Bits(9, 4)
    assert params['ENABLE_ICEGATE'] is True
    assert config.is_dynamic_delay()
    settings = reverse_config(config, 12 * MHz)
    assert settings.error_ratio(Fraction('24.75') * MHz) <= 0.01

def test_phase_and_delay() -> None:
    config = single_output(12 * MHz, 48 * MHz,
                           feedback=FeedbackPath.PHASE_AND_DELAY,
                           shiftreg_div_mode=ShiftregDivMode.DIV_7,
                           pllout_select=OutputSelect.SHIFTREG_90DEG)
    assert config.SHIFTREG_DIV_MODE == Bits(1, 1)
    assert config.DIVQ == Bits(1, 3)
    assert config.PLLOUT_SELECT == OutputSelect.SHIFTREG_90DEG
    settings = reverse_config(config, 12 * MHz)
    assert settings.shiftreg_div == 7
    assert settings.fvco() == 672 * MHz
    assert settings.fout() == 48 * MHz

    # No mode means divide by 4.
    config = single_output(12 * MHz, 48 * MHz,
                           feedback=FeedbackPath.PHASE_AND_DELAY,
                           pllout_select=OutputSelect.SHIFTREG_0DEG)
    assert config.SHIFTREG_DIV_MODE == Bits(0, 1)
    assert config.DIVQ == Bits(2, 3)

def test_preconditions(monkeypatch) -> None:
    import pytest
    from . import plan_pll
    from .plan_tools import InvalidRequest

    def no_search(*args, **kwargs):
        assert False, 'search should not run'
    monkeypatch.setattr(plan_pll, 'best_div', no_search)

    with pytest.raises(InvalidRequest):
        single_output(12 * MHz, 48 * MHz,
                      feedback=FeedbackPath.PHASE_AND_DELAY,
                      pllout_select=OutputSelect.GENCLK)
    with pytest.raises(InvalidRequest):
        single_output(12 * MHz, 48 * MHz,
                      pllout_select=OutputSelect.SHIFTREG_0DEG)
    with pytest.raises(InvalidRequest):
        single_output(12 * MHz, 48 * MHz, feedback=None,
                      pllout_select=OutputSelect.SHIFTREG_90DEG)
    with pytest.raises(InvalidRequest):
        single_output(12 * MHz, 48 * MHz, feedback=FeedbackPath.DELAY,
                      shiftreg_div_mode=ShiftregDivMode.DIV_4)
    with pytest.raises(InvalidRequest):
        single_output(12 * MHz, 48 * MHz, feedback=None,
                      shiftreg_div_mode=ShiftregDivMode.DIV_7)
    with pytest.raises(InvalidRequest):
        single_output(12 * MHz, 48 * MHz, fda_feedback=16)
    with pytest.raises(InvalidRequest):
        single_output(12 * MHz, 48 * MHz, fda_relative=-1)
    with pytest.raises(InvalidRequest):
        single_output(12 * MHz, Fraction('275.5') * MHz)
    with pytest.raises(InvalidRequest):
        single_output(Fraction('9.5') * MHz, 48 * MHz)

def test_mismatch() -> None:
    import pytest
    from .plan_tools import PlanningFailed
    fout = 100_000_001 * Hz
    # 100000001 is coprime to 12000000, so no exact match exists.
    with pytest.raises(PlanningFailed, match='best match is'):
        single_output(12 * MHz, fout, allowed_mismatch=0)
    config = single_output(12 * MHz, fout)
    settings = reverse_config(config, 12 * MHz)
    assert 0 < settings.error_ratio(fout) <= 0.01

def test_default_mismatch() -> None:
    import inspect
    params = inspect.signature(single_output).parameters
    assert params['allowed_mismatch'].default == ALLOWED_MISMATCH == 0.01
    # 0.5% off passes by default.
    config = single_output(12 * MHz, 100 * MHz)
    settings = reverse_config(config, 12 * MHz)
    assert settings.error_ratio(100 * MHz) == 0.005

def test_no_solution() -> None:
    import pytest
    from .plan_tools import PlanningFailed
    # DIVF is 15 or 16 at 12MHz, and then even DIVQ=0 puts the VCO at
    # 192MHz * 7 or more, over the top of its range.
    with pytest.raises(PlanningFailed, match='Could not find any'):
        single_output(12 * MHz, 200 * MHz,
                      feedback=FeedbackPath.PHASE_AND_DELAY,
                      shiftreg_div_mode=ShiftregDivMode.DIV_7,
                      pllout_select=OutputSelect.SHIFTREG_0DEG)

def test_deterministic() -> None:
    fout = Fraction(100, 3) * MHz
    assert single_output(12 * MHz, fout, feedback=None) \
        == single_output(12 * MHz, fout, feedback=None)

def test_report(capsys) -> None:
    config = single_output(12 * MHz, 48 * MHz)
    report_config(config, 12 * MHz, 48 * MHz, verbose=True)
    out = capsys.readouterr().out
    assert 'Output 48 MHz SIMPLE feedback' in out
    assert 'VCO: 768 MHz' in out
    assert 'DIVR=0 DIVF=63 DIVQ=4 FILTER_RANGE=1' in out
    assert "DIVF = 7'b0111111" in out
