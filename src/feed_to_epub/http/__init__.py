"""HTTP access to remote feeds."""
