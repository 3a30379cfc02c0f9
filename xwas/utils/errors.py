"""
Exception types raised by the XWAS core.

Design construction errors are fatal; fit errors are local to one exposure
and are recovered by the screening engine.
"""


class XWASError(Exception):
    """Base class for all pyXWAS errors"""


class InvalidDesignError(XWASError, ValueError):
    """Survey design columns are missing or malformed"""


class FitError(XWASError, RuntimeError):
    """A single regression could not produce usable estimates"""


class SingularFitError(FitError):
    """Design matrix is rank deficient (constant or collinear term)"""
