"""Rule monitoring scheduler."""
