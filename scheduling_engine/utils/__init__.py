"""Utility helpers: logging, time and display formatting."""
