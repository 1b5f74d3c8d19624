# Width of the pgvector column; changing it needs a new migration
VECTOR_DIMENSIONS = 768
