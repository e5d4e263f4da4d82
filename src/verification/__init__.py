"""
Verification module for ledger invariants and state validation.
"""

from .ledger_verifier import InvariantViolation, LedgerVerifier

__all__ = ['InvariantViolation', 'LedgerVerifier']
