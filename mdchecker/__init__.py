"""
mdchecker - Update reconciliation engine for tracked MangaDex titles
"""

__version__ = "1.4.0"
