"""
NFT Watch
=========

Polls the Reservoir marketplace API for collection state changes
(floor price, top bid, new listings, new sales, burns) and sends
de-duplicated, rate-limited alerts to Discord.

Usage:
    python -m nftwatch
"""

__version__ = "0.1.0"
