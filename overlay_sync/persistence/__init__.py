"""Durable state: the processed-commit ledger and the state directory lock."""
