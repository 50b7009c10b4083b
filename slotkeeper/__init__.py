"""
slotkeeper - appointment availability and booking engine for service shops.
"""

__version__ = "0.3.0"
