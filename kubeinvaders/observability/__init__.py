"""Logging and metrics for kubeinvaders."""
