"""docwiki — hierarchical wiki pages with fractional ordering and comment threads."""

__version__ = "0.3.0"
