"""
Command-line uploader.

Usage:
    python -m block_upload <file> [container_name] [--destination-name NAME] [--dry-run]

The file is split into CHUNK_SIZE_MB blocks, each block is staged, and the
ordered block list is committed as one blob. Settings come from .env; see
.env.template.
"""

import argparse
import signal
import sys
from pathlib import Path

from block_upload.config import MIB, Config
from block_upload.coordinator import UploadCoordinator
from block_upload.errors import InvalidConfiguration, SessionFailed, UploadCancelled
from block_upload.log import build_logger
from block_upload.session import make_destination_name
from block_upload.splitter import split
from block_upload.store import AzureBlockStore

EXIT_CONFIG_ERROR = 1
EXIT_UPLOAD_FAILED = 2
EXIT_CANCELLED = 130


def _parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="block-upload",
        description="Upload one large file to Azure Blob Storage as staged, committed blocks.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  python -m block_upload video.mp4\n"
            "  python -m block_upload backup.tar my-container --destination-name backups/latest.tar\n"
            "  python -m block_upload backup.tar --dry-run\n"
        ),
    )
    parser.add_argument("path", help="Path to the file to upload.")
    parser.add_argument(
        "container_name",
        nargs="?",
        default=None,
        help="Target container. Overrides CONTAINER_NAME in .env.",
    )
    parser.add_argument(
        "--destination-name",
        default=None,
        metavar="NAME",
        help="Blob name to commit to. Defaults to <millis>_<token>_<file name>.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate config and print the chunk plan without uploading.",
    )
    return parser.parse_args(argv)


def main(argv=None) -> None:
    args = _parse_args(argv)

    try:
        cfg = Config.from_env()
    except InvalidConfiguration as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        sys.exit(EXIT_CONFIG_ERROR)

    log_dir = Path(cfg.log_path) if cfg.log_path else Path.cwd() / "logs"
    logger = build_logger(log_dir)

    container_name = args.container_name or cfg.store.container_name
    file_path = Path(args.path).expanduser().resolve()
    if not file_path.is_file():
        logger.error(f"Not a file: {file_path}")
        sys.exit(EXIT_CONFIG_ERROR)

    file_size = file_path.stat().st_size
    destination_name = args.destination_name or make_destination_name(file_path.name)

    logger.info("=" * 60)
    logger.info("  block_upload")
    logger.info("=" * 60)
    logger.info(f"Source    : {file_path}  ({file_size:,} bytes / {file_size / (1024**3):.3f} GiB)")
    logger.info(f"Container : {container_name}")
    logger.info(f"Blob      : {destination_name}")
    logger.info(f"Chunk     : {cfg.upload.chunk_size // MIB} MB  |  Threads: {cfg.upload.concurrency}")

    if args.dry_run:
        chunks = list(split(file_size, cfg.upload.chunk_size))
        logger.info(f"[DRY RUN] {len(chunks)} chunk(s) would be staged:")
        width = len(str(len(chunks)))
        for c in chunks:
            logger.info(f"  [{c.index:>{width}}] bytes {c.start:,}..{c.end:,}  ({c.length:,} bytes)")
        logger.info("[DRY RUN] Nothing was uploaded.")
        sys.exit(0)

    store = AzureBlockStore(cfg.store, logger=logger)
    coordinator = UploadCoordinator(store, cfg.upload, logger=logger)

    session = coordinator.start_session(file_size, destination_name, container_name)

    def _handle_interrupt(signum, frame):
        coordinator.cancel()

    signal.signal(signal.SIGINT, _handle_interrupt)
    signal.signal(signal.SIGTERM, _handle_interrupt)

    try:
        with file_path.open("rb") as fh:
            url = coordinator.run(session, fh, original_name=file_path.name)
    except UploadCancelled as exc:
        logger.warning(exc.describe())
        sys.exit(EXIT_CANCELLED)
    except SessionFailed as exc:
        logger.error(exc.describe())
        logger.warning("Staged blocks are not reused; re-run to upload the file again.")
        sys.exit(EXIT_UPLOAD_FAILED)

    logger.info(f"Upload complete: {url}")
    print(f"\n{url}")
    sys.exit(0)


if __name__ == "__main__":
    main()
