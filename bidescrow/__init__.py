"""
bidescrow - Single-auction escrow engine.

An English auction with escrowed deposits:
- Minimum-increment bid acceptance
- Anti-sniping window extension
- Partial refunds of superseded bids
- Commission split and settlement after finalization
"""

__version__ = "0.1.0"
