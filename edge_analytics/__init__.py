"""
Edge Analytics - per-location event counters, QR scan logs and one-time
promotion redemption on a key-value store.
"""
__version__ = "1.0.0"
