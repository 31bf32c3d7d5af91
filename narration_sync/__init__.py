"""
Narration Sync

Narrates long-form text and times every word for read-along playback.
"""

__version__ = "1.0.0"
