"""
RestoMap - restaurant directory and review API
"""

__version__ = "1.0.0"
