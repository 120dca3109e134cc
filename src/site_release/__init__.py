"""site-release: provision, publish and verify a static site."""

__version__ = "0.1.0"
