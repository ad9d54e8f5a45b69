"""
Storage package - key-value store access and key layout
"""
from edge_analytics.db.kv import KVStore, KeyPage

__all__ = ["KVStore", "KeyPage"]
