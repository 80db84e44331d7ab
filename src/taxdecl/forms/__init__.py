from .aeat720 import Aeat720Generator
from .d6 import D6Generator, format_number

__all__ = ["Aeat720Generator", "D6Generator", "format_number"]
