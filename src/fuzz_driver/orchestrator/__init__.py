"""Task orchestration: argument parsing, tool dispatch and post-run reporting."""
