"""DamageDetect: vehicle damage assessment from photos and video."""

__version__ = "0.1.0"
