"""
actorsync - compares actors' filmographies (or movies' casts) on a shared timeline.
"""

__version__ = "0.1.0"
