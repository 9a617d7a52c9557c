"""
Ultimate Tracker.
Unified shipment tracking lookup with live presence and chat broadcasting.
"""

__version__ = "1.0.0"
