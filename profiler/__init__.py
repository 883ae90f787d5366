"""Runtime memory-profiling engine: ledger, retention, suggestions, history."""
