"""Command-line interface for arbitrator."""
