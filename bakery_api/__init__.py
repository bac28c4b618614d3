"""Happy Sourdough storefront backend."""
