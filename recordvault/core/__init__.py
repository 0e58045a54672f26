"""Record store internals: substrate, keys, codec, validation, cleaning, cache."""
