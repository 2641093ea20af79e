"""Geofenced clock-in/out evaluation and shift classification."""
