
from fractions import Fraction

# All the frequencies are in Hz.
Hz = Fraction(1)
kHz = Hz * 1000
MHz = kHz * 1000

# iCE40 LP/HP Family Data Sheet, FPGA-DS-02029-4.0, p. 35.
FIN_MIN = 10 * MHz
FIN_MAX = 133 * MHz
FVCO_MIN = 533 * MHz
FVCO_MAX = 1066 * MHz
FOUT_MIN = 16 * MHz
FOUT_MAX = 275 * MHz

# The data sheet doesn't give a PFD range.  These are the values icepll uses.
FDIV_MIN = 10 * MHz
FDIV_MAX = 133 * MHz

# Divider ranges.  The PLL usage guide claims DIVF is limited to 63.  That only
# applies to the non-SIMPLE feedback paths, SIMPLE gets the full 7 bits.
DIVR_MAX = 15
DIVF_MAX = 127
DIVF_MAX_NON_SIMPLE = 63
DIVQ_MAX = 7

# Packed widths of the numeric SB_PLL40 parameters.
DIVR_WIDTH = 4
DIVF_WIDTH = 7
DIVQ_WIDTH = 3
FILTER_RANGE_WIDTH = 3
FDA_WIDTH = 4
SHIFTREG_DIV_MODE_WIDTH = 1

# The DYNAMICDELAY port carries both 4 bit delay values.
DYNAMICDELAY_WIDTH = 8

# Loop filter setting by PFD frequency, again from icepll.  The first entry
# with fdiv below the threshold wins, anything faster gets the last code.
FILTER_RANGES = (
    (17 * MHz, 1),
    (26 * MHz, 2),
    (44 * MHz, 3),
    (66 * MHz, 4),
    (101 * MHz, 5),
)
FILTER_RANGE_TOP = 6

# Default allowed relative error of the output frequency.
ALLOWED_MISMATCH = 0.01
