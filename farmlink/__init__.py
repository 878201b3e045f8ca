"""FarmLink: produce marketplace, delivery brokering and escrowed driver jobs."""

__version__ = "0.1.0"
