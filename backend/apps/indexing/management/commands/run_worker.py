"""
Django management command to run the indexing worker.

Usage:
    python manage.py run_worker
    python manage.py run_worker --once
"""
from django.core.management.base import BaseCommand

from apps.indexing.worker import IndexingWorker


class Command(BaseCommand):
    help = 'Run the document indexing worker'

    def add_arguments(self, parser):
        parser.add_argument(
            '--once',
            action='store_true',
            help='Process one pending document and exit',
        )

    def handle(self, *args, **options):
        worker = IndexingWorker()

        if options['once']:
            self.stdout.write('Running worker once...')
            if worker.run_once():
                self.stdout.write(self.style.SUCCESS('Processed one document'))
            else:
                self.stdout.write('No pending documents')
        else:
            self.stdout.write('Starting worker loop...')
            worker.run()
