"""Centralized constants for the IPO auction engine.

This module contains system-wide constants used across the codebase to ensure
consistency and avoid duplication.
"""

# Floating point comparison tolerance
# Used for validating commitments and other monetary calculations
# to account for floating point precision errors
FLOAT_TOLERANCE = 1e-5

# Cash conservation tolerance
# Used for verifying cash + total_spent matches initial capital
# Larger tolerance (1 cent) since we're checking aggregates
CASH_MATCHING_TOLERANCE = 0.01

# Ownership fraction that makes a holder the CEO of a company
CEO_THRESHOLD = 0.35

# Minimum tradable increment of shares for generated bot bids
DEFAULT_LOT_SIZE = 100

# Bot bid prices are rounded to the nearest quarter
PRICE_TICK = 0.25

# A bot never spreads its IPO bids over more companies than this
MAX_COMPANIES_PER_BOT = 4

DEFAULT_STARTING_CAPITAL = 1000.0
DEFAULT_TOTAL_SHARES = 1000

# Reference price of a company before its IPO has cleared
DEFAULT_REFERENCE_PRICE = 1.00
