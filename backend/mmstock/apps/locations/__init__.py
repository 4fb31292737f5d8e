"""Parques (storage yards): master data, default seed and name/code matching."""
