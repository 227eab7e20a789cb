"""Page tree: fractional positions and the page store."""
