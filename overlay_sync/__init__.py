"""
overlay-sync — Keep base, overlay, and merged repositories in step.

Replays each repository's commit history and mirrors whole-file changes
between the three working trees according to a fixed precedence table.
"""

__version__ = "0.1.0"
