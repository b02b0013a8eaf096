"""Core errors and protocol constants."""
