"""Tests for the argo-compare command line tool."""
