"""User-facing surfaces: CLI router, plain-text renderer, Textual dashboard."""
