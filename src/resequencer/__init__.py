"""
Resequencer: ordered release of out-of-order sequenced items.

Buffers items per correlation key and hands them downstream strictly
in position order, either as contiguous runs close gaps or only once
the whole sequence has arrived.
"""

__version__ = "0.1.0"
