"""CodeTrack: tasks reconciled with annotations scanned from a linked repository."""

__version__ = "0.1.0"
