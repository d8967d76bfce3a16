"""
Signage Player.
Pairs a display device with the signage backend, keeps its assigned
playlist in sync and plays it full screen.
"""

__version__ = "0.1.0"
