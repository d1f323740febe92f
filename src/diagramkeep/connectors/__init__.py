"""Connectors: the CLI REPL and the HTTP bridge the editor talks to."""
