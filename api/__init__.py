"""HTTP query layer for the profiling agent."""
