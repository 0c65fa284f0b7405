'''Divider planning for the iCE40 SB_PLL40 PLL.'''
