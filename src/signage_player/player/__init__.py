"""
Player package for the signage player.
Contains modules for pairing, playlist resolution, media caching,
the realtime status channel and timed playback.
"""
