
from .pll_constants import Hz, MHz, kHz

from fractions import Fraction
from typing import NoReturn, TypeAlias

# An exact number of Hz.
Frequency: TypeAlias = Fraction

class PlanningFailed(RuntimeError):
    pass

class InvalidRequest(ValueError):
    pass

def fail(why: str) -> NoReturn:
    raise PlanningFailed(why)

def reject(why: str) -> NoReturn:
    raise InvalidRequest(why)

def str_to_freq(s: str) -> Fraction:
    s = s.lower()
    for suffix, scale in ('khz', kHz), ('mhz', MHz), \
            ('ghz', 1000 * MHz), ('hz', Hz):
        if s.endswith(suffix):
            break
        if suffix != 'hz' and s.endswith(suffix[0]):
            suffix = suffix[0]
            break
    else:
        suffix = ''
        scale = MHz

    return Fraction(s.removesuffix(suffix).strip()) * scale

# Set the name of str_to_freq to give sensible argparse help test.
str_to_freq.__name__ = 'frequency'

FRACTIONS = {
    Fraction(0): '',
    Fraction(1, 3): '⅓',
    Fraction(2, 3): '⅔',
    Fraction(1, 6): '⅙',
    Fraction(5, 6): '⅚',
    Fraction(1, 7): '⅐',
    Fraction(1, 9): '⅑',
}

def freq_to_str(freq: Fraction, precision: int = 0) -> str:
    if abs(freq) >= 10_000 * MHz:
        scaled = freq / (MHz * 1000)
        suffix = 'GHz'
    elif abs(freq) >= MHz:
        scaled = freq / MHz
        suffix = 'MHz'
    elif abs(freq) >= kHz:
        scaled = freq / kHz
        suffix = 'kHz'
    else:
        scaled = freq / Hz
        suffix = 'Hz'

    rounded = round(scaled)
    fract = Fraction(scaled % 1)
    fract_str = None
    if scaled >= 0 and fract in FRACTIONS:
        fract_str = FRACTIONS[fract]

    elif scaled >= 0 and (
            fract.denominator in (6, 7, 9) or 11 <= fract.denominator <= 19):
        fract_str = f'+{fract}'

    elif rounded != scaled and rounded != 0 and abs(rounded - scaled) < 1e-5:
        if rounded < scaled:
            fract_str = f' + {float(scaled - rounded):.6g}'
        else:
            fract_str = f' - {float(rounded - scaled):.6g}'
        scaled = rounded

    if fract_str is not None:
        return f'{int(scaled)}{fract_str} {suffix}'
    elif precision == 0:
        return f'{float(scaled)} {suffix}'
    else:
        return f'{float(scaled):.{precision}g} {suffix}'

def test_str_to_freq() -> None:
    assert str_to_freq('48MHz') == 48 * MHz
    assert str_to_freq('48m') == 48 * MHz
    assert str_to_freq('48') == 48 * MHz
    assert str_to_freq('12000kHz') == 12 * MHz
    assert str_to_freq('12000K') == 12 * MHz
    assert str_to_freq('24.75MHz') == Fraction(99, 4) * MHz
    assert str_to_freq('100hz') == 100 * Hz
    assert str_to_freq('1.066ghz') == 1066 * MHz

def test_freq_to_str() -> None:
    assert freq_to_str(48 * MHz) == '48 MHz'
    assert freq_to_str(768 * MHz) == '768 MHz'
    assert freq_to_str(12 * MHz / 3) == '4 MHz'
    assert freq_to_str(100 * MHz / 3) == '33⅓ MHz'
    assert freq_to_str(Fraction(99, 4) * MHz) == '24.75 MHz'
    assert freq_to_str(1500 * Hz) == '1.5 kHz'
    assert freq_to_str(-250 * kHz) == '-250.0 kHz'
