"""Live viewer for coding-assistant session task lists."""
