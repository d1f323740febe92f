"""diagramkeep — state reconciliation and persistence for an embedded diagram editor."""

__version__ = "0.1.0"
