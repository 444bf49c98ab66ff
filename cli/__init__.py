"""Quokka command line interface."""
