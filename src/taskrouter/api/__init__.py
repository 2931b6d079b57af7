"""HTTP surface for the task router."""
