"""HTTP surface of the run orchestrator."""
