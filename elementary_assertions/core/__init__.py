"""Derivation stages: mentions, projection, assertions, diagnostics and output."""
