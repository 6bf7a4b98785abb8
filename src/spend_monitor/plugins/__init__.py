"""Provider plugins. Only modules under this package talk to a concrete provider."""
