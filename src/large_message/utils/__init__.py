"""
Module: utils
Description: Logging, errors, retry, property validation, hashing and tracing.
"""
