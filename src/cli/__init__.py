"""Command line interface for the quiz session engine."""
