"""Schemas shared between the Invoice Hub server and its client."""
