"""Cross-cutting platform concerns: error handling and health."""
