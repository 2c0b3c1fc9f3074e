"""Version information for manager_operator."""

__version__ = "0.3.0"
