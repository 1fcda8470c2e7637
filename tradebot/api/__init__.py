"""HTTP routes over the trading core."""
