"""Tests for :mod:`herit.controllers`."""
