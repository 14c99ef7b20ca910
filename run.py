#!/usr/bin/env python3
"""
localscribe entry point: load config, set up logging, then manage models or transcribe a file.

    python run.py validate
    python run.py list
    python run.py download small
    python run.py delete small
    python run.py recommend
    python run.py transcribe recording.wav
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

from config import CONFIG_ENV_VAR, AppConfig, load_config
from sdk import AudioClip, ScribeError
from stt.advisor import format_gb
from stt.catalog import ModelVariant, parse_variant
from stt.download import DownloadProgress, DownloadStatus

logger = logging.getLogger(__name__)

_ROOT = Path(__file__).resolve().parent


def setup_logging(config: AppConfig, root: Path = _ROOT) -> None:
    """Root logging from logging.level / logging.file. Single place for entry-point logging setup."""
    log_level = config.get_log_level()
    level = getattr(logging, log_level.upper(), logging.INFO)
    log_fmt = "%(asctime)s %(levelname)s %(name)s %(message)s"
    logging.basicConfig(level=level, format=log_fmt)
    log_path = config.get_log_path()
    if log_path:
        path = Path(log_path) if os.path.isabs(log_path) else root / log_path
        path.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(path, encoding="utf-8")
        fh.setLevel(level)
        fh.setFormatter(logging.Formatter(log_fmt))
        logging.getLogger().addHandler(fh)


def bootstrap_config() -> AppConfig:
    """Load config and set up logging. Raises FileNotFoundError if the root config is missing."""
    config = AppConfig(load_config())
    setup_logging(config)
    logger.info("Config path: %s", os.environ.get(CONFIG_ENV_VAR, str(_ROOT / "config.yaml")))
    return config


def _variant_arg(value: str) -> ModelVariant:
    try:
        return parse_variant(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Local/remote speech transcription with managed whisper.cpp models.",
    )
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("validate", help="Check every model file; remove corrupted ones")
    sub.add_parser("list", help="List model variants and their state")
    p = sub.add_parser("download", help="Download and verify a model variant")
    p.add_argument("variant", type=_variant_arg, help="tiny | base | small | medium | large")
    p = sub.add_parser("delete", help="Delete a downloaded model variant")
    p.add_argument("variant", type=_variant_arg, help="tiny | base | small | medium | large")
    sub.add_parser("recommend", help="Recommend a variant for this machine")
    p = sub.add_parser("transcribe", help="Transcribe a 16-bit PCM WAV file")
    p.add_argument("wav", type=Path, help="Path to the WAV file")
    return parser


def _print_progress(progress: DownloadProgress) -> None:
    if progress.status == DownloadStatus.DOWNLOADING:
        print(f"\r{progress.variant}: {progress.percentage:5.1f}%", end="", flush=True)
    elif progress.status == DownloadStatus.VALIDATING:
        print(f"\r{progress.variant}: validating...      ", flush=True)
    elif progress.status == DownloadStatus.COMPLETED:
        print(f"{progress.variant}: done")


async def _dispatch(args: argparse.Namespace, config: AppConfig) -> int:
    from app.service import create_core

    async with create_core(config) as core:
        if args.command == "validate":
            results = await core.validate_all_on_startup()
            failed = False
            for r in results:
                if r.error:
                    failed = True
                    state = f"error: {r.error}"
                elif r.removed:
                    state = "corrupted, removed"
                elif r.valid:
                    state = "ok"
                else:
                    state = "not downloaded"
                print(f"{r.variant.value:8} {state}")
            return 1 if failed else 0

        if args.command == "list":
            for m in await core.list_models():
                if m.downloaded:
                    state = "downloaded"
                elif m.corrupted:
                    state = "corrupted"
                else:
                    state = "-"
                if m.loaded:
                    state += " (loaded)"
                print(
                    f"{m.variant.value:8} {format_gb(m.size_bytes):>8}  "
                    f"accuracy={m.accuracy_tier:6} speed={m.speed_tier:6} {state}"
                )
            return 0

        if args.command == "download":
            path = await core.download_model(args.variant, _print_progress)
            print(f"Saved {path}")
            return 0

        if args.command == "delete":
            removed = await core.delete_model(args.variant)
            print(f"Deleted {args.variant}" if removed else f"{args.variant} was not downloaded")
            return 0

        if args.command == "recommend":
            rec = await core.recommend_for_system()
            print(f"Recommended: {rec.variant.value if rec.variant else 'remote'}")
            print(rec.reason)
            if rec.warning:
                print(rec.warning)
            if rec.alternatives:
                print("Alternatives: " + ", ".join(v.value for v in rec.alternatives))
            return 0

        if args.command == "transcribe":
            audio = AudioClip.from_wav(args.wav.read_bytes())
            result = await core.transcribe(audio)
            print(result.text)
            logger.info(
                "Transcribed %.1fs of audio via %s in %d ms",
                audio.duration_sec,
                result.provider_used,
                result.duration_ms,
            )
            return 0

    return 1


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config = bootstrap_config()
    except FileNotFoundError as e:
        print(e, file=sys.stderr)
        return 1
    try:
        return asyncio.run(_dispatch(args, config))
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return 130
    except ScribeError as e:
        logger.error("%s", e)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except (OSError, ValueError) as e:
        logger.error("%s", e)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
