"""
LinkPick Content Sync

Keeps homepage content consistent across three representations:
1. The relational store (through an abstract repository)
2. A Redis read-through cache
3. Versioned JSON snapshot files used for fast rendering and fallback
"""

__version__ = "0.1.0"
