"""mamacare: streaming prenatal health assistant core."""

__version__ = "0.1.0"
