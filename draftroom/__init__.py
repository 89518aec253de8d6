"""
Draft-night backend: snake-order pick allocation, sibling auto-picks and trade settlement.
"""
