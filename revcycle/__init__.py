"""Revenue cycle engine: coding, charges, claims, EDI 837/835 and denial management."""

__version__ = "1.0.0"
