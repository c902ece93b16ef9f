"""Classifier models bundled with the package (JSON gazetteers)."""
