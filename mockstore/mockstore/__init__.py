"""mockstore — reference JSON API endpoint used for local runs and tests."""
