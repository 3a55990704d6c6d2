"""
Command-Line Interface Layer.

This package contains the Typer application, Rich formatting helpers and the
progress display.
"""
