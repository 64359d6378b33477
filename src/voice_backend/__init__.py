"""Voice chat backend: spoken chat replies delivered by polling."""

__version__ = "0.1.0"
