"""
Monthly sales digest: per-representative sales reports from the previous month's orders.
"""

__version__ = "0.1.0"
