"""Transactional installer for versioned skill packages."""

__version__ = "0.1.0"
