"""Ontoloom: name resolution and methodology linting for OML ontologies."""

__version__ = "0.3.0"
