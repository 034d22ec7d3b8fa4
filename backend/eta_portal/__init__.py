"""UK ETA application portal: draft caching, autosave and submission."""

__version__ = "0.1.0"
