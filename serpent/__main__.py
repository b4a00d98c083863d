#!/usr/bin/env python3
"""
serpent CLI - Entry point for the serpent transpiler.

This module allows running the transpiler as:
    python -m serpent transpile script.py
    serpent transpile script.py  (when installed via pip)
"""

from serpent.cli import main

if __name__ == "__main__":
    main()
