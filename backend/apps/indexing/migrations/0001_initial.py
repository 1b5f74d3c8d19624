# Generated migration for the DocumentChunk model

from django.db import migrations, models
import django.db.models.deletion
import uuid


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('docs', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='DocumentChunk',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('chunk_index', models.PositiveIntegerField(help_text='Index of this chunk within the document (0-based)')),
                ('text', models.TextField(help_text='The text content of this chunk')),
                ('token_count', models.PositiveIntegerField(help_text='Number of tokens in this chunk')),
                ('encoded_embedding', models.TextField(blank=True, help_text='Embedding encoded as text (encoded vector store only)', null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('document', models.ForeignKey(help_text='The source document', on_delete=django.db.models.deletion.CASCADE, related_name='chunks', to='docs.document')),
            ],
            options={
                'db_table': 'doc_chunks',
                'ordering': ['document', 'chunk_index'],
            },
        ),
        migrations.AddConstraint(
            model_name='documentchunk',
            constraint=models.UniqueConstraint(fields=('document', 'chunk_index'), name='unique_document_chunk'),
        ),
        migrations.AddIndex(
            model_name='documentchunk',
            index=models.Index(fields=['document', 'chunk_index'], name='doc_chunks_documen_8b0e4d_idx'),
        ),
    ]
