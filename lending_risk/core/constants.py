"""Constants for lending market risk calculations.

These mirror the on-chain program's parameters; changing them changes the
numbers the read model reports.
"""

from decimal import Decimal

# Time constants
SECONDS_PER_YEAR = 31_556_952  # 365.2425 days
SECONDS_PER_DAY = 86_400

# Precision constants
WAD = 10**18  # 18 decimal fixed-point scale
U64_MAX = 2**64 - 1  # Sentinel for an unlimited rate limiter
U256_MAX = 2**256 - 1  # Widest raw value the on-chain decimal type can hold
BPS_DENOMINATOR = 10_000

# Bisection search defaults.
# 50 halvings shrink a 1e9-token interval below 1e-6 tokens; wider intervals
# need a looser tolerance or more iterations.
BISECTION_MAX_ITERATIONS = 50
BISECTION_TOLERANCE = Decimal("0.000001")

# Account-level cap on the conservative borrow limit (USD)
ACCOUNT_BORROW_LIMIT_USD = Decimal("20000000")

# Raw units that must stay in a reserve after a borrow or withdraw
MIN_AVAILABLE_AMOUNT = 100

# Deposits are capped with headroom for this many seconds of interest
DEPOSIT_LIMIT_INTEREST_BUFFER_SECONDS = 10 * 60

# Oracle quote acceptance
MAX_PRICE_STALENESS_SECONDS = 60
MIN_CONFIDENCE_RATIO = 10
