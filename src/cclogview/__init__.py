"""Read-only HTTP service over reconstructed Claude Code session logs."""
