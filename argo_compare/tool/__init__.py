"""Command line tool for argo-compare."""
