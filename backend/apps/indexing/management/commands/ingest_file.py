"""
Ingest a local file synchronously, without the worker.

Usage:
    python manage.py ingest_file notes.pdf --session <session-id>
"""
import mimetypes
from pathlib import Path

from django.core.management.base import BaseCommand, CommandError

from apps.docs.models import DocumentStatus
from apps.indexing.ingestor import DocumentIngestor, DocumentValidationError


class Command(BaseCommand):
    help = 'Extract, chunk and embed a local file into a session'

    def add_arguments(self, parser):
        parser.add_argument('path', help='Path to a PDF, TXT, MD or DOCX file')
        parser.add_argument('--session', required=True, help='Session the document belongs to')
        parser.add_argument('--content-type', default=None, help='Override the guessed MIME type')

    def handle(self, *args, **options):
        path = Path(options['path'])
        if not path.is_file():
            raise CommandError(f'File not found: {path}')

        content_type = options['content_type'] or mimetypes.guess_type(path.name)[0]

        try:
            document = DocumentIngestor().ingest(
                path.read_bytes(), path.name, content_type, options['session']
            )
        except DocumentValidationError as e:
            raise CommandError(f'{e.code}: {e}')

        if document.status == DocumentStatus.COMPLETED:
            self.stdout.write(self.style.SUCCESS(
                f'Ingested {document.filename} as {document.id} ({document.chunk_count} chunks)'
            ))
        else:
            raise CommandError(f'Ingestion failed for {document.id}: {document.error_message}')
