"""Domain layer: entities and their repositories."""
