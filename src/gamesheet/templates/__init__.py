"""Bundled game-data templates (YAML package data)."""
