#!/usr/bin/python3

assert __name__ == '__main__'

import sys
if sys.version_info < (3, 10):
    print(f'Your python version {sys.version} is too old. ',
          'This program needs 3.10 or later')
    sys.exit(1)

from ice40pll.pll_config import report_config, single_output
from ice40pll.pll_constants import ALLOWED_MISMATCH
from ice40pll.plan_pll import FeedbackPath, OutputSelect, ShiftregDivMode
from ice40pll.plan_tools import InvalidRequest, PlanningFailed, str_to_freq

import argparse

FEEDBACKS = {f.name.lower(): f for f in FeedbackPath}
FEEDBACKS['auto'] = None
OUTPUT_SELECTS = {o.name.lower(): o for o in OutputSelect}

argp = argparse.ArgumentParser(
    description='iCE40 SB_PLL40 divider calculator',
    epilog='''Frequencies may have a Hz, kHz (k), MHz (M) or GHz (G) suffix.
    Without a suffix, MHz is assumed.''')
argp.add_argument('FIN', type=str_to_freq, help='Reference input frequency')
argp.add_argument('FOUT', type=str_to_freq, help='Requested output frequency')
argp.add_argument('-f', '--feedback', choices=list(FEEDBACKS),
                  default='simple',
                  help='''Feedback path.  auto tries both simple and
                  delay.''')
argp.add_argument('-s', '--shiftreg-div', type=int, choices=(4, 7),
                  help='Shift register divide, phase_and_delay only')
argp.add_argument('-o', '--output-select', choices=list(OUTPUT_SELECTS),
                  default='genclk', help='PLL output selection')
argp.add_argument('-m', '--mismatch', type=float, default=ALLOWED_MISMATCH,
                  help='''Allowed relative frequency error
                  (default %(default)s)''')
argp.add_argument('--fda-feedback', type=int, metavar='N',
                  help='Use dynamic feedback delay, with value N')
argp.add_argument('--fda-relative', type=int, metavar='N',
                  help='Use dynamic relative delay, with value N')
argp.add_argument('--icegate', action='store_true',
                  help='Enable the ICEGATE latch input')
argp.add_argument('--lock', action='store_true', help='Provide LOCK output')
argp.add_argument('-v', '--verbose', action='store_true',
                  help='Also list the primitive parameters')

args = argp.parse_args()

shiftreg_div_mode = None
if args.shiftreg_div is not None:
    shiftreg_div_mode = ShiftregDivMode(args.shiftreg_div)

try:
    config = single_output(
        args.FIN, args.FOUT, allowed_mismatch=args.mismatch,
        feedback=FEEDBACKS[args.feedback],
        fda_feedback=args.fda_feedback, fda_relative=args.fda_relative,
        shiftreg_div_mode=shiftreg_div_mode,
        pllout_select=OUTPUT_SELECTS[args.output_select],
        enable_icegate=args.icegate, with_lock=args.lock)
except (InvalidRequest, PlanningFailed) as e:
    print(e, file=sys.stderr)
    sys.exit(1)

report_config(config, args.FIN, args.FOUT, verbose=args.verbose)
