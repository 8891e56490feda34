"""Router domain layer — exceptions and events."""
