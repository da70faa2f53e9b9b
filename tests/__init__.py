"""Tests for argo-compare."""
