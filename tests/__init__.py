"""Tests for the photometric pipeline package."""
