"""Shared host plumbing: paths, settings, logging and external tools."""
