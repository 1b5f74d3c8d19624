# Generated migration for the Document model

from django.db import migrations, models
import uuid


class Migration(migrations.Migration):

    initial = True

    dependencies = [
    ]

    operations = [
        migrations.CreateModel(
            name='Document',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('session_id', models.CharField(db_index=True, help_text='Session / conversation ID the document was uploaded into', max_length=100)),
                ('filename', models.CharField(help_text='Original filename', max_length=255)),
                ('content_type', models.CharField(help_text='MIME type of the file', max_length=100)),
                ('size_bytes', models.PositiveIntegerField(help_text='File size in bytes')),
                ('content_hash', models.CharField(db_index=True, help_text='SHA-256 hash of file content', max_length=64)),
                ('storage_path', models.CharField(blank=True, default='', help_text='Path to file on disk (relative to upload root)', max_length=500)),
                ('status', models.CharField(choices=[('PENDING', 'Waiting for ingestion'), ('PROCESSING', 'Currently ingesting'), ('COMPLETED', 'Ready for retrieval'), ('FAILED', 'Ingestion failed')], db_index=True, default='PENDING', help_text='Current status in the ingestion pipeline', max_length=20)),
                ('error_message', models.TextField(blank=True, help_text='Error message if ingestion failed', null=True)),
                ('chunk_count', models.PositiveIntegerField(default=0, help_text='Number of chunks (authoritative once COMPLETED)')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('processed_at', models.DateTimeField(blank=True, null=True)),
            ],
            options={
                'db_table': 'documents',
                'ordering': ['-created_at'],
            },
        ),
        migrations.AddIndex(
            model_name='document',
            index=models.Index(fields=['session_id', 'created_at'], name='documents_session_3f1c2a_idx'),
        ),
    ]
