"""Field-weighted relevance search engine."""
