"""NewTube: self-hosted channel mirror and media library."""

__version__ = "0.1.0"
