"""Widgets for the coordinator dashboard."""
