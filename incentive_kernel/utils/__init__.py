"""Utility functions for the incentive kernel."""

from incentive_kernel.utils.hashing import canonicalize_json, hash_payload

__all__ = ["canonicalize_json", "hash_payload"]
