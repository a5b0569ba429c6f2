"""Credit score oracle: blends on-chain and off-chain signals into a 300-850 score."""

__version__ = "0.1.0"
