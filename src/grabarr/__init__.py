"""grabarr - release acquisition core for media library managers."""

__version__ = "0.1.0"
