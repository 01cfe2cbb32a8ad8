# Copyright (c) 2025 Platshim Contributors
# MIT License

"""Platshim release metadata."""

from __future__ import annotations

__version__ = "0.3.0"
__author__ = "Platshim Contributors"
__codename__ = "Crossroads"

# Version info tuple for programmatic comparison
VERSION_INFO = (0, 3, 0)
