"""
Guild Wars party formation bot.

Tracks speed-clear party rosters posted to a Discord channel: members claim
roles, leaders manage the roster, and parties lock automatically after a fixed
time window.
"""

__version__ = "1.0.0"
