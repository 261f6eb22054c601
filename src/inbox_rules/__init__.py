"""Rule matching and action execution for AI-assisted email automation."""

__version__ = "0.1.0"
