"""Spanish AEAT 720 and D-6 declarations from broker reports."""

__version__ = "0.1.0"
