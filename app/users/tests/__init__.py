"""Tests for the user directory."""
