"""Find out who contributed to GitHub repositories, users and organizations."""

__version__ = "0.1.0"
