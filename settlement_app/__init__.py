"""
Settlement Processor

Resolves the on-chain leg of cross-venue trades: finds a healthy RPC
endpoint, decodes the settlement transaction, prices it in USD and records
profit for every pending trade.
"""

__version__ = "0.1.0"
