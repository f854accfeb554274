"""Test doubles for running Pilot without remote services."""
