"""memindex: semantic index over code and project memories."""

__version__ = "0.1.0"
