"""Generative planning infrastructure."""
