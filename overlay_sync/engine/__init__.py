"""
Sync Engine — change extraction, propagation rules, and branch orchestration.
"""
