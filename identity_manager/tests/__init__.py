"""Tests for :mod:`identity_manager`."""
