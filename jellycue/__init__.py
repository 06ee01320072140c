"""Jellyfin playback tracking and cross-season autoplay for mpv."""

__version__ = "0.1.0"
