"""Resumable virtual machine for compiled interactive-dialogue programs."""

__version__ = "0.1.0"
