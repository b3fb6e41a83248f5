"""Service layer — business logic and the only place that commits."""
