"""Read-side risk and rewards accounting for an over-collateralised lending market."""

__version__ = "0.1.0"
