"""Logging and metrics for eventrouter."""
