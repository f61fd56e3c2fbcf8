"""Report generation for completed test-pipeline runs."""
