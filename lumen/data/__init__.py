"""Seed dataset, local override cache and the merge engine."""
