"""memassist: a personal knowledge assistant with memory and tools."""

__version__ = "0.1.0"
