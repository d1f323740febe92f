"""Persistence: key-value substrates, the diagram registry and quota handling.

Layout of the substrate keys:
    diagramkeep-diagrams           # JSON list of saved records (icons stripped)
    diagramkeep-last-opened        # id of the record restored at startup
    diagramkeep-last-opened-data   # snapshot of the working document (icons stripped)
"""
