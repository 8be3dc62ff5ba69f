"""Canonical schemas for Omnihook."""
