"""
Twitch Scrapurr: record Twitch channels when they go live and
download VODs and clips.
"""

__version__ = "0.3.0"
