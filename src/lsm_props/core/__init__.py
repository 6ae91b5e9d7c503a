"""Embedded LSM engine core: configuration, errors, types and the store."""
