"""Version-control collaborators (git)."""
