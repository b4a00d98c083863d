"""serpent: a transpiler from numeric Python to Rust with ndarray."""

__version__ = "0.1.0"
