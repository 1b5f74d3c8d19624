"""
Migration to add an HNSW index on doc_chunk_vectors.embedding.

HNSW provides fast approximate nearest neighbour lookups on the native
column for operators inspecting stored vectors with SQL.
"""
from django.db import migrations


class Migration(migrations.Migration):

    dependencies = [
        ('vectors', '0001_initial'),
    ]

    operations = [
        migrations.RunSQL(
            sql="""
                CREATE INDEX IF NOT EXISTS doc_chunk_vectors_embedding_hnsw_idx
                ON doc_chunk_vectors
                USING hnsw (embedding vector_cosine_ops)
                WITH (m = 16, ef_construction = 64);
            """,
            reverse_sql="DROP INDEX IF EXISTS doc_chunk_vectors_embedding_hnsw_idx;"
        ),
    ]
