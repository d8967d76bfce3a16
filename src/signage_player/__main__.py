"""
Entry point for: python3 -m signage_player

Launches the signage player (pairing flow, then playlist playback).
"""

from .player.app import main

if __name__ == "__main__":
    main()
