"""
Lifelog - unified personal activity log

Drivers normalize exports from personal-data sources into one
append-only event index, refreshed on schedule and served back through
search, timeline and analytics queries.
"""

__version__ = "0.1.0"
