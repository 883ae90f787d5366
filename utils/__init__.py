"""Shared helpers for the profiling agent."""
