"""Provider-neutral domain model, registry, normalization and health rules."""
