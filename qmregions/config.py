"""Static configuration values for qmregions."""

from __future__ import annotations

APP_NAME = "qmregions"
PROMPT = "qmregions> "
EXIT_WORDS = ("exit", "quit", "e")

# PDB fixed-width limits; larger values wrap back to the start of the field.
MAX_ATOM_SERIAL = 99999
ATOM_SERIAL_WRAP = 100000
MAX_RESIDUE_NUMBER = 9999
RESIDUE_NUMBER_WRAP = 10000

# Occupancy/B-factor values encoding region membership.
QM1_OCCUPANCY = 1.0
QM2_OCCUPANCY = 2.0
ACTIVE_BFACTOR = 1.0
FLAG_TOLERANCE = 1e-3

DEFAULT_CLASH_CUTOFF = 1.0
DEFAULT_CONTACT_CUTOFF = 4.0
SPHERE_TOLERANCE = 1e-9

SCAN_CHUNK_SIZE = 4096
DEFAULT_WORKERS = 1
DEFAULT_LOG_LEVEL = "WARNING"

BACKBONE_NAMES = frozenset(
    {"N", "CA", "C", "O", "OXT", "H", "H1", "H2", "H3", "HN", "HA", "HA2", "HA3"}
)

AMINO_ACID_NAMES = frozenset(
    {
        "ALA", "ARG", "ASN", "ASP", "CYS", "GLN", "GLU", "GLY", "HIS", "ILE",
        "LEU", "LYS", "MET", "PHE", "PRO", "SER", "THR", "TRP", "TYR", "VAL",
        "SEC", "PYL", "MSE",
        "HID", "HIE", "HIP", "HSD", "HSE", "HSP", "CYX", "CYM", "ASH", "GLH",
        "LYN", "ARN", "TYM",
        "NALA", "CALA",
    }
)
