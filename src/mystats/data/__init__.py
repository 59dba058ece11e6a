"""Data access layer for the statistics store."""
