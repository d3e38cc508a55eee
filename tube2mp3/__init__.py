"""YouTube link to signed MP3 download gateway."""

__version__ = "0.1.0"
