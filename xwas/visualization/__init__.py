"""
Plots of XWAS results
"""
