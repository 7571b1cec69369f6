"""Pool decoding, resolution and quoting for Raydium AMM v4."""
