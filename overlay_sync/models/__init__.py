"""Data models shared by the engine, ledger, and mirror."""
