"""Core layer: domain models and collaborator protocols."""
