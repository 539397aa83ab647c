"""Tests for :mod:`herit.services`."""
