"""Command-line interface for forgelink."""
