"""
betledger: Bankroll Risk & Analytics Engine

Turns an append-only ledger of deposits, withdrawals and bet settlements
into balances, drawdown statistics, loss-limit checks, Kelly bet sizing
and performance analytics.
"""

__version__ = "0.1.0"
