"""core-care-participants: backend de gestion des dossiers participants."""

__version__ = "0.1.0"
