"""Outer interfaces of the autopay engine."""
