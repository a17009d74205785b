"""Pure product-grouping logic: normalization, similarity, suggestions and the effective mapping view."""
