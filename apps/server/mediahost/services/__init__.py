"""Collaborating services owned by the application host."""
