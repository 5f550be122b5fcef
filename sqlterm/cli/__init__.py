"""Command line interface for SQLTerm."""
