"""Command line tools for pyspbm."""
