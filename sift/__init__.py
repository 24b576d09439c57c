"""Sift -- context reduction for a terminal AI ops agent."""
