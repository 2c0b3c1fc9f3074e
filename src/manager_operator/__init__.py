"""Manager operator - drives the Manager custom resource toward its desired state."""

from manager_operator.__version__ import __version__

__all__ = ["__version__"]
