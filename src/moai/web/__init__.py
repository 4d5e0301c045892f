"""Moai HTTP surface."""
