"""Ceremony & draft integrity engine."""
