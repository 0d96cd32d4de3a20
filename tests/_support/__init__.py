"""Shared test models and fakes."""
