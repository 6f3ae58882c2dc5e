"""RPG Maker Event Translator - batch extract / inject of event text.

Usage:
    python main.py extract <data_dir> <cache_dir>
    python main.py inject <data_dir> <cache_dir> <out_dir>
"""

import argparse
import logging
import os
import signal
import sys

from PyQt6.QtCore import QCoreApplication, QTimer

from event_translator import __version__
from event_translator.batch_engine import BatchEngine, DocumentJob
from event_translator.errors import PluginConfigError
from event_translator.plugin_config import PluginConfigStore
from event_translator.rpgmaker_mv import is_event_file
from event_translator.settings import SETTINGS_FILE, load_settings

log = logging.getLogger("event_translator")


def setup_logging(verbose: bool):
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler()]
    )


def cache_path_for(cache_dir: str, filename: str) -> str:
    stem = os.path.splitext(filename)[0]
    return os.path.join(cache_dir, f"{stem}.translation.json")


def build_jobs(mode: str, data_dir: str, cache_dir: str, out_dir: str = "") -> list:
    """One job per event data file in ``data_dir``."""
    jobs = []
    for filename in sorted(os.listdir(data_dir)):
        if not is_event_file(filename):
            continue
        cache = cache_path_for(cache_dir, filename)
        if mode == "inject" and not os.path.exists(cache):
            log.info("No translation cache for %s - skipped", filename)
            continue
        jobs.append(DocumentJob(
            source_path=os.path.join(data_dir, filename),
            cache_path=cache,
            output_path=os.path.join(out_dir, filename) if out_dir else "",
        ))
    return jobs


def make_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description=f"RPG Maker event translator v{__version__}")
    parser.add_argument("--settings", default=SETTINGS_FILE,
                        help="Path to the JSON settings file")
    parser.add_argument("--plugins", default=None,
                        help="Path to a JSON file of user plugin field configs")
    parser.add_argument("--workers", "-w", type=int, default=None,
                        help="Number of worker threads")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Enable verbose logging")
    sub = parser.add_subparsers(dest="command", required=True)

    ext = sub.add_parser("extract", help="Write translation caches for event files")
    ext.add_argument("data_dir", help="Game data folder (www/data or data)")
    ext.add_argument("cache_dir", help="Folder for translation cache files")

    inj = sub.add_parser("inject", help="Write translated event files")
    inj.add_argument("data_dir", help="Game data folder with the original files")
    inj.add_argument("cache_dir", help="Folder with translation cache files")
    inj.add_argument("out_dir", help="Folder for the translated data files")
    return parser


def main(argv=None) -> int:
    args = make_parser().parse_args(argv)
    setup_logging(args.verbose)

    settings = load_settings(args.settings)
    plugin_file = args.plugins or settings.plugin_config_file
    try:
        store = (PluginConfigStore.load_user_configs(plugin_file)
                 if plugin_file else PluginConfigStore())
    except PluginConfigError as e:
        print(f"Error: {e}")
        return 2

    if not os.path.isdir(args.data_dir):
        print(f"Error: data folder does not exist: {args.data_dir}")
        return 2
    os.makedirs(args.cache_dir, exist_ok=True)
    out_dir = getattr(args, "out_dir", "")
    if out_dir:
        os.makedirs(out_dir, exist_ok=True)

    jobs = build_jobs(args.command, args.data_dir, args.cache_dir, out_dir)
    if not jobs:
        print("Nothing to do: no event files found.")
        return 0

    app = QCoreApplication(sys.argv[:1])
    app.setApplicationName("RPG Maker Event Translator")
    app.setApplicationVersion(__version__)

    engine = BatchEngine(store, settings.extraction, settings.injection)
    engine.num_workers = args.workers or settings.workers

    def on_progress(current: int, total: int, name: str):
        print(f"[{current}/{total}] {name}")

    def on_finished():
        report = engine.report
        print("=" * 60)
        if args.command == "extract":
            print(f"Extracted {report.total_units} units from {len(report.results)} files")
        else:
            print(f"Applied {report.applied} translations, {report.not_found} untranslated "
                  f"units left as-is, in {len(report.results)} files")
        for err in report.errors:
            print(f"FAILED {os.path.basename(err.source_path)}: {err.message}")
        print("=" * 60)
        QCoreApplication.quit()

    engine.progress.connect(on_progress)
    engine.finished.connect(on_finished)

    if args.command == "extract":
        QTimer.singleShot(0, lambda: engine.extract_batch(jobs))
    else:
        QTimer.singleShot(0, lambda: engine.inject_batch(jobs))

    # Ctrl+C: stop scheduling new documents, let the current ones finish
    signal.signal(signal.SIGINT, lambda *a: engine.cancel())

    app.exec()
    return 1 if engine.report.errors else 0


if __name__ == "__main__":
    sys.exit(main())
