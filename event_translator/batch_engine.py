"""Batch engine - runs extraction/injection over many documents with Qt threading."""

import logging
import os
from dataclasses import dataclass, field
from typing import Optional

from PyQt6.QtCore import QObject, QThread, pyqtSignal

from .errors import EventTranslatorError
from .plugin_config import PluginConfigStore
from .project_model import TranslationFile
from .rpgmaker_mv import (EventExtractor, EventInjector, load_document,
                          save_document)
from .settings import ExtractionOptions, InjectionOptions

log = logging.getLogger(__name__)


@dataclass
class DocumentJob:
    """One data file to process."""
    source_path: str
    cache_path: str = ""          # translation cache to write (extract) or read (inject)
    output_path: str = ""         # where the injected document goes; "" = overwrite source

    @property
    def name(self) -> str:
        return os.path.basename(self.source_path)


@dataclass
class DocumentError:
    source_path: str
    message: str


@dataclass
class BatchReport:
    results: dict = field(default_factory=dict)   # source_path → Extraction/InjectionOutput
    errors: list = field(default_factory=list)    # DocumentError per failed document
    cancelled: bool = False

    @property
    def total_units(self) -> int:
        return sum(len(getattr(r, "units", ())) for r in self.results.values())

    @property
    def applied(self) -> int:
        return sum(getattr(r, "applied", 0) for r in self.results.values())

    @property
    def not_found(self) -> int:
        return sum(getattr(r, "not_found", 0) for r in self.results.values())


class BatchWorker(QObject):
    """Worker that processes a chunk of documents in a background thread."""

    document_done = pyqtSignal(str, object)  # source_path, output
    item_processed = pyqtSignal(str)         # document name (for progress tracking)
    finished = pyqtSignal()
    error = pyqtSignal(str, str)             # source_path, error_message

    def __init__(self, jobs: list, mode: str, plugin_store: PluginConfigStore,
                 options: ExtractionOptions, inject_options: InjectionOptions):
        super().__init__()
        self.jobs = jobs
        self.mode = mode  # "extract" or "inject"
        self._cancelled = False
        # Each worker owns its handlers; only the plugin store is shared, read-only.
        self.extractor = EventExtractor(plugin_store=plugin_store, options=options)
        self.injector = EventInjector(plugin_store=plugin_store, options=options,
                                      inject_options=inject_options)

    def cancel(self):
        self._cancelled = True

    def run(self):
        """Process all documents in this worker's chunk."""
        for job in self.jobs:
            if self._cancelled:
                break
            self.item_processed.emit(job.name)
            try:
                if self.mode == "inject":
                    output = self.process_inject(job)
                else:
                    output = self.process_extract(job)
                self.document_done.emit(job.source_path, output)
            except (EventTranslatorError, OSError, ValueError) as e:
                log.warning("Failed to %s %s: %s", self.mode, job.name, e)
                self.error.emit(job.source_path, str(e))

        self.finished.emit()

    def process_extract(self, job: DocumentJob):
        output = self.extractor.extract(load_document(job.source_path), job.name)
        if job.cache_path:
            cache = TranslationFile.from_output(output)
            if os.path.exists(job.cache_path):
                stats = cache.import_translations(TranslationFile.load(job.cache_path))
                log.info("%s: kept %d translations by id, %d by text",
                         job.name, stats["by_id"], stats["by_text"])
            cache.save(job.cache_path)
        return output

    def process_inject(self, job: DocumentJob):
        translations = TranslationFile.load(job.cache_path).translations()
        output = self.injector.inject(load_document(job.source_path), translations, job.name)
        save_document(job.output_path or job.source_path, output.document)
        return output


class BatchEngine(QObject):
    """Manages parallel document workers.

    Documents are independent, so they are split into sequential chunks,
    one per worker thread.  The plugin store captured at batch start is
    used for the whole batch.
    """

    progress = pyqtSignal(int, int, str)  # current, total, document name
    document_done = pyqtSignal(str, object)
    error = pyqtSignal(str, str)
    finished = pyqtSignal()

    def __init__(self, plugin_store: Optional[PluginConfigStore] = None,
                 options: Optional[ExtractionOptions] = None,
                 inject_options: Optional[InjectionOptions] = None, parent=None):
        super().__init__(parent)
        self.plugin_store = plugin_store or PluginConfigStore()
        self.options = options or ExtractionOptions()
        self.inject_options = inject_options or InjectionOptions()
        self.num_workers = 2
        self.report = BatchReport()
        self._threads = []
        self._workers = []
        self._total = 0
        self._progress_count = 0
        self._finished_workers = 0

    @property
    def is_running(self) -> bool:
        return any(t.isRunning() for t in self._threads)

    def extract_batch(self, jobs: list):
        """Start extraction of all jobs with parallel workers."""
        self._start(jobs, "extract")

    def inject_batch(self, jobs: list):
        """Start injection of all jobs with parallel workers."""
        self._start(jobs, "inject")

    def _start(self, jobs: list, mode: str):
        if self.is_running:
            return

        self.report = BatchReport()
        if not jobs:
            self.finished.emit()
            return

        self._total = len(jobs)
        self._progress_count = 0
        self._finished_workers = 0
        self._threads = []
        self._workers = []

        store = self.plugin_store  # snapshot for this batch
        n = min(max(1, self.num_workers), len(jobs))
        for chunk in self._split_chunks(jobs, n):
            thread = QThread()
            worker = BatchWorker(chunk, mode, store, self.options, self.inject_options)
            worker.moveToThread(thread)

            thread.started.connect(worker.run)
            worker.item_processed.connect(self._on_item_processed)
            worker.document_done.connect(self._on_document_done)
            worker.error.connect(self._on_error)
            worker.finished.connect(self._on_worker_finished)

            self._threads.append(thread)
            self._workers.append(worker)

        log.info("Starting %s of %d documents on %d workers", mode, len(jobs), n)
        for thread in self._threads:
            thread.start()

    def cancel(self):
        """Stop scheduling further documents; documents in progress complete."""
        self.report.cancelled = True
        for worker in self._workers:
            worker.cancel()

    def _on_item_processed(self, name: str):
        """Track global progress across all workers."""
        self._progress_count += 1
        self.progress.emit(self._progress_count, self._total, name)

    def _on_document_done(self, source_path: str, output):
        self.report.results[source_path] = output
        self.document_done.emit(source_path, output)

    def _on_error(self, source_path: str, message: str):
        self.report.errors.append(DocumentError(source_path, message))
        self.error.emit(source_path, message)

    def _on_worker_finished(self):
        """Track worker completion; emit finished when all done."""
        self._finished_workers += 1
        if self._finished_workers >= len(self._workers):
            for thread in self._threads:
                thread.quit()
                thread.wait()
            self._threads = []
            self._workers = []
            log.info("Batch finished: %d documents, %d errors",
                     len(self.report.results), len(self.report.errors))
            self.finished.emit()

    @staticmethod
    def _split_chunks(items: list, n: int) -> list:
        """Split a list into n roughly equal sequential chunks."""
        if n <= 1:
            return [items]
        k, remainder = divmod(len(items), n)
        chunks = []
        start = 0
        for i in range(n):
            size = k + (1 if i < remainder else 0)
            chunks.append(items[start:start + size])
            start += size
        return chunks
