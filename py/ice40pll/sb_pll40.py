'''amaranth wrapper instantiating the iCE40 SB_PLL40_PAD / SB_PLL40_CORE
primitive from a PLLConfig.'''

from __future__ import annotations

from .pll_constants import DYNAMICDELAY_WIDTH, MHz
from .pll_config import Bits, PLLConfig
from .plan_pll import FeedbackPath

from amaranth import ClockDomain, ClockSignal, Const, Elaboratable, Instance, \
    Module, Signal

__all__ = 'SB_PLL40', 'pll_ports'

# (name, direction, width, initial value).
Port = tuple[str, str, int, int]

def pll_ports(config: PLLConfig, pad: bool = True) -> list[Port]:
    '''The ports present on the primitive for a given configuration.'''
    ports: list[Port] = [
        ('RESETB', 'i', 1, 1),
        ('BYPASS', 'i', 1, 0),
    ]
    # The PAD variant takes the reference straight from a package pin.
    if pad:
        ports.append(('PACKAGEPIN', 'i', 1, 0))
    else:
        ports.append(('REFERENCECLK', 'i', 1, 0))
    if config.FEEDBACK_PATH == FeedbackPath.EXTERNAL:
        ports.append(('EXTFEEDBACK', 'i', 1, 0))
    if config.is_dynamic_delay():
        ports.append(('DYNAMICDELAY', 'i', DYNAMICDELAY_WIDTH, 0))
    if config.ENABLE_ICEGATE:
        ports.append(('LATCHINPUTVALUE', 'i', 1, 0))
    if config.with_lock:
        ports.append(('LOCK', 'o', 1, 0))
    ports.append(('PLLOUTGLOBAL', 'o', 1, 0))
    ports.append(('PLLOUTCORE', 'o', 1, 0))
    return ports

class SB_PLL40(Elaboratable):
    '''Instantiate the PLL.

    Every port of the primitive is exposed as a Signal in self.ports, keyed
    by the primitive's port name.  RESETB idles high and BYPASS low, so only
    the reference clock input needs connecting.  If domain is given, a clock
    domain of that name is created and clocked from PLLOUTGLOBAL.'''

    def __init__(self, config: PLLConfig, pad: bool = True,
                 domain: str | None = None):
        self.config = config
        self.pad = pad
        self.domain = domain
        self.ports = {
            name: Signal(width, name=name.lower(), init=init)
            for name, _, width, init in pll_ports(config, pad)}
        self.directions = {
            name: direction for name, direction, _, _ in pll_ports(config, pad)}

    @property
    def primitive(self) -> str:
        return 'SB_PLL40_PAD' if self.pad else 'SB_PLL40_CORE'

    @property
    def clock_input(self) -> Signal:
        return self.ports['PACKAGEPIN' if self.pad else 'REFERENCECLK']

    def elaborate(self, platform):
        m = Module()

        kwargs = {}
        for name, value in self.config.parameters().items():
            if isinstance(value, Bits):
                value = Const(value.value, value.width)
            elif isinstance(value, bool):
                value = int(value)
            kwargs['p_' + name] = value
        for name, signal in self.ports.items():
            kwargs[self.directions[name] + '_' + name] = signal

        m.submodules.pll = Instance(self.primitive, **kwargs)

        if self.domain is not None:
            m.domains += ClockDomain(self.domain)
            m.d.comb += ClockSignal(self.domain).eq(self.ports['PLLOUTGLOBAL'])

        return m

def test_ports_minimal() -> None:
    from .pll_config import single_output
    config = single_output(12 * MHz, 48 * MHz)
    names = [name for name, _, _, _ in pll_ports(config)]
    assert names == ['RESETB', 'BYPASS', 'PACKAGEPIN',
                     'PLLOUTGLOBAL', 'PLLOUTCORE']
    names = [name for name, _, _, _ in pll_ports(config, pad=False)]
    assert 'REFERENCECLK' in names and 'PACKAGEPIN' not in names

def test_ports_optional() -> None:
    from .pll_config import single_output
    config = single_output(12 * MHz, 48 * MHz,
                           feedback=FeedbackPath.EXTERNAL, fda_feedback=3,
                           enable_icegate=True, with_lock=True)
    ports = {name: (direction, width)
             for name, direction, width, _ in pll_ports(config)}
    assert ports['EXTFEEDBACK'] == ('i', 1)
    assert ports['DYNAMICDELAY'] == ('i', 8)
    assert ports['LATCHINPUTVALUE'] == ('i', 1)
    assert ports['LOCK'] == ('o', 1)
    assert ports['PLLOUTGLOBAL'] == ('o', 1)
    assert ports['PLLOUTCORE'] == ('o', 1)

    # Either dynamic delay is enough for the DYNAMICDELAY port.
    config = single_output(12 * MHz, 48 * MHz, fda_relative=0)
    names = [name for name, _, _, _ in pll_ports(config)]
    assert 'DYNAMICDELAY' in names
    assert 'EXTFEEDBACK' not in names
    assert 'LOCK' not in names

def test_elaborate() -> None:
    from .pll_config import single_output
    config = single_output(12 * MHz, 48 * MHz, with_lock=True)
    pll = SB_PLL40(config, pad=False, domain='sync')
    assert pll.primitive == 'SB_PLL40_CORE'
    assert pll.clock_input is pll.ports['REFERENCECLK']
    m = pll.elaborate(None)
    assert isinstance(m, Module)
    inst = m.submodules.pll
    assert inst.type == 'SB_PLL40_CORE'
    assert inst.parameters['DIVF'].value == 63
    assert inst.parameters['DIVQ'].value == 4
    assert inst.parameters['FEEDBACK_PATH'] == 'SIMPLE'
    assert inst.parameters['PLLOUT_SELECT'] == 'GENCLK'
    assert inst.parameters['ENABLE_ICEGATE'] == 0
    assert set(inst.ports) == {
        'RESETB', 'BYPASS', 'REFERENCECLK', 'LOCK',
        'PLLOUTGLOBAL', 'PLLOUTCORE'}
    for name, (value, direction) in inst.ports.items():
        assert value is pll.ports[name]
        assert direction == pll.directions[name]
    assert inst.ports['LOCK'][1] == 'o'
    assert inst.ports['REFERENCECLK'][1] == 'i'

def test_elaborate_optional_ports() -> None:
    from .pll_config import single_output
    config = single_output(12 * MHz, 48 * MHz,
                           feedback=FeedbackPath.EXTERNAL, fda_relative=5,
                           enable_icegate=True, with_lock=True)
    pll = SB_PLL40(config)
    inst = pll.elaborate(None).submodules.pll
    assert inst.type == 'SB_PLL40_PAD'
    assert inst.parameters['FEEDBACK_PATH'] == 'EXTERNAL'
    assert inst.parameters['DELAY_ADJUSTMENT_MODE_RELATIVE'] == 'DYNAMIC'
    assert inst.parameters['FDA_RELATIVE'].value == 5
    assert inst.parameters['ENABLE_ICEGATE'] == 1
    directions = {name: direction
                  for name, (_, direction) in inst.ports.items()}
    assert directions == {
        'RESETB': 'i', 'BYPASS': 'i', 'PACKAGEPIN': 'i',
        'EXTFEEDBACK': 'i', 'DYNAMICDELAY': 'i', 'LATCHINPUTVALUE': 'i',
        'LOCK': 'o', 'PLLOUTGLOBAL': 'o', 'PLLOUTCORE': 'o'}
    assert len(inst.ports['DYNAMICDELAY'][0]) == 8
