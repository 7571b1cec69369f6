"""rayswap - Raydium AMM v4 swap execution.

Resolves pool state, quotes with slippage protection, builds the ordered swap
instruction bundle and submits it through a default RPC, Warp or Jito path.
"""

__version__ = "0.3.0"
