"""
Association testing for XWAS analysis
"""

from .model import build_formula, fit
from .screen import run_screen

__all__ = ['build_formula', 'fit', 'run_screen']
