"""Application layer — DTOs at the API boundary."""
