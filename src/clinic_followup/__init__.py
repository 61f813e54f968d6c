"""Clinic appointment confirmation and follow-up orchestration engine."""

__version__ = "0.1.0"
