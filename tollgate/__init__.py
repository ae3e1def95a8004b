"""Tollgate: tiered request admission control."""
