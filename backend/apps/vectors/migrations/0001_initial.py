# Generated migration for the ChunkVector model

from django.db import migrations, models
import django.db.models.deletion
import pgvector.django


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('indexing', '0001_initial'),
    ]

    operations = [
        pgvector.django.VectorExtension(),
        migrations.CreateModel(
            name='ChunkVector',
            fields=[
                ('chunk', models.OneToOneField(help_text='The chunk this embedding belongs to', on_delete=django.db.models.deletion.CASCADE, primary_key=True, related_name='vector', serialize=False, to='indexing.documentchunk')),
                ('embedding', pgvector.django.VectorField(dimensions=768, help_text='Vector embedding of the chunk text')),
            ],
            options={
                'db_table': 'doc_chunk_vectors',
            },
        ),
    ]
