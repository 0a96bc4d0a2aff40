"""Signed high-score ledger.

A backend authority signs EIP-712 score messages; the ledger recovers
the signer, enforces single-use nonces and per-field score policies,
and tracks milestone progress per player.
"""

__version__ = "0.1.0"
