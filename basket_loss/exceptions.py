"""Error taxonomy for basket loss models."""


class BasketLossError(Exception):
    """Base class for all errors raised by the loss model framework."""


class InvalidModelParameters(BasketLossError, ValueError):
    """Factor loadings, degrees of freedom or model settings are infeasible."""


class InvalidTrancheBounds(BasketLossError, ValueError):
    """Attachment/detachment points are out of order or outside [0, 1]."""


class OutOfGridRange(BasketLossError, ValueError):
    """A base correlation lookup fell outside the quoted grid."""


class InsufficientConvergence(BasketLossError, RuntimeError):
    """Quadrature or simulation did not reach the requested tolerance."""
