"""
Agricultural equipment rental marketplace engine.
"""

__version__ = "0.1.0"
