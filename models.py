# Model constants
ada002 = "text-embedding-ada-002"
embed3small = "text-embedding-3-small"
embed3large = "text-embedding-3-large"

# Vector width of each embedding model, used to validate provider responses
EMBEDDING_DIMENSIONS = {
    ada002: 1536,
    embed3small: 1536,
    embed3large: 3072,
}

# The widget index was built with ada-002 vectors; querying with another
# model produces scores that are not comparable.
EMBEDDING_MODEL = ada002
