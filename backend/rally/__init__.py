"""Rally: tournament brackets, results and ratings."""

__version__ = "0.1.0"
