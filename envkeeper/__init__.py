"""
envkeeper - environment state tracking and installation orchestration
"""

__version__ = "1.0.0"
