"""QM/MM region editing for PDB structures."""

__version__ = "0.1.0"
