"""Movie catalog backed by a GitHub repository used as a flat-file store."""
