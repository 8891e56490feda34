"""Cross-cutting infrastructure: providers, observability."""
