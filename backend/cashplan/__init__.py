"""Purchase-order cash planning and payment reconciliation."""

__version__ = "0.1.0"
