"""Report rendering and scan persistence."""
