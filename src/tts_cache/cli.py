"""
Command-Line Interface for tts-cache.

Runs the same pipeline as the HTTP server, against the same artifact
directory, without starting the server.

Usage Examples:
    # Get or create one artifact
    tts-cache generate "Hello world" --voice en --speed 175

    # Copy the artifact somewhere else as well
    tts-cache generate "Hello world" --out hello.mp3

    # Batch from a file (1 line = 1 item)
    tts-cache generate --file lines.txt --json

    # Fingerprint only (no subprocess, no artifact written)
    tts-cache fingerprint "Hello world" --json

    # Retention sweep with a custom window
    tts-cache sweep --max-age 3600

    # Run the HTTP server
    tts-cache serve --host 0.0.0.0 --port 3000

Exit Codes:
    0  success
    1  pipeline error (validation, generation, storage)
    2  usage error

Environment Variables:
    TTS_CACHE_SETTINGS: Settings file (default config/settings.yaml)
    TTS_CACHE_ARTIFACT_DIR, TTS_CACHE_ESPEAK_BIN, TTS_CACHE_FFMPEG_BIN,
    TTS_CACHE_FFPROBE_BIN, TTS_CACHE_RETENTION_SECONDS: overrides
"""

from __future__ import annotations

import argparse
import json
import os
import shutil
from pathlib import Path
from typing import List, Optional
from uuid import uuid4

from tts_cache.core.config import ConfigValidationError, load_settings
from tts_cache.core.logging import configure_logging, fail, get_logger, info, set_request_id
from tts_cache.pipeline.errors import CacheError
from tts_cache.services.audio_service import AudioService


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="tts-cache", description="tts-cache CLI")
    parser.add_argument(
        "--settings",
        default=os.getenv("TTS_CACHE_SETTINGS", "config/settings.yaml"),
        help="Settings YAML (missing file means defaults)",
    )
    parser.add_argument("--json", action="store_true", help="Print JSON output")
    sub = parser.add_subparsers(dest="command", required=True)

    gen = sub.add_parser("generate", help="Get or create audio artifacts")
    gen.add_argument("text", nargs="?", help="Text to speak")
    gen.add_argument("--file", help="Batch input file (1 line = 1 item)")
    gen.add_argument("--voice", help="Voice override")
    gen.add_argument("--speed", type=int, help="Speed override (words per minute)")
    gen.add_argument("--out", help="Also copy the artifact here (file, or dir in batch mode)")
    gen.add_argument("--json", action="store_true", default=argparse.SUPPRESS, help="Print JSON output")

    fp = sub.add_parser("fingerprint", help="Validate and fingerprint without generating")
    fp.add_argument("text", help="Text to fingerprint")
    fp.add_argument("--voice", help="Voice override")
    fp.add_argument("--speed", type=int, help="Speed override (words per minute)")
    fp.add_argument("--json", action="store_true", default=argparse.SUPPRESS, help="Print JSON output")

    sw = sub.add_parser("sweep", help="Remove artifacts older than the retention window")
    sw.add_argument("--max-age", type=float, help="Window in seconds (default: configured)")
    sw.add_argument("--json", action="store_true", default=argparse.SUPPRESS, help="Print JSON output")

    srv = sub.add_parser("serve", help="Run the HTTP server")
    srv.add_argument("--host", default="0.0.0.0")
    srv.add_argument("--port", type=int, default=3000)

    args = parser.parse_args(argv)
    if args.command == "generate":
        if bool(args.text) == bool(args.file):
            parser.error("generate needs either TEXT or --file")
    if args.command == "sweep" and args.max_age is not None and args.max_age < 0:
        parser.error("--max-age must be non-negative")
    return args


def _load_texts(args: argparse.Namespace) -> List[str]:
    if not args.file:
        return [args.text]
    lines = Path(args.file).read_text(encoding="utf-8").splitlines()
    items = [line for line in lines if line.strip()]
    if not items:
        raise SystemExit("Input file is empty.")
    return items


def _resolve_output_paths(args: argparse.Namespace, fingerprints: List[str], extension: str) -> List[Optional[Path]]:
    if not args.out:
        return [None] * len(fingerprints)
    if args.file:
        out_dir = Path(args.out)
        out_dir.mkdir(parents=True, exist_ok=True)
        return [out_dir / f"item_{i + 1:03d}.{extension}" for i in range(len(fingerprints))]
    out_path = Path(args.out)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    return [out_path]


def _emit(payload: dict, as_json: bool) -> None:
    if as_json:
        print(json.dumps(payload, ensure_ascii=False))
    else:
        for key, value in payload.items():
            print(f"{key}: {value}")


def _cmd_generate(service: AudioService, args: argparse.Namespace, log) -> int:
    results = []
    for text in _load_texts(args):
        meta = service.generate(service.make_request(text, args.voice, args.speed)).meta
        results.append(meta)

    outs = _resolve_output_paths(args, [m.fingerprint for m in results], service.cache.extension)
    items = []
    for meta, out in zip(results, outs):
        if out is not None:
            shutil.copyfile(meta.path, out)
        items.append({
            "fingerprint": meta.fingerprint,
            "path": str(meta.path),
            "url": meta.url,
            "bytes": meta.byte_size,
            "duration": round(meta.duration_seconds, 3),
            "cache": meta.cache_status,
            "out": str(out) if out else None,
        })

    info(log, "generate_done", items=len(items))
    if len(items) == 1 and not args.file:
        _emit({"ok": True, **items[0]}, args.json)
    else:
        _emit({"ok": True, "items": items}, args.json)
    return 0


def _cmd_fingerprint(service: AudioService, args: argparse.Namespace) -> int:
    request = service.make_request(args.text, args.voice, args.speed)
    fp = service.fingerprint_for(request)
    path = service.cache.path_for(fp)
    _emit(
        {
            "ok": True,
            "fingerprint": fp,
            "voice": request.voice,
            "speed": request.speed,
            "path": str(path),
            "url": service.cache.url_for(fp),
            "cached": path.is_file(),
        },
        args.json,
    )
    return 0


def _cmd_sweep(service: AudioService, args: argparse.Namespace) -> int:
    result = service.sweep(args.max_age)
    _emit({"ok": True, **result.to_dict()}, args.json)
    return 0


def _cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    os.environ["TTS_CACHE_SETTINGS"] = args.settings
    uvicorn.run("tts_cache.main:app", host=args.host, port=args.port)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Returns:
        Exit code (0 success, 1 pipeline error). Usage errors exit with 2
        through argparse.
    """
    args = _parse_args(argv)

    if args.command == "serve":
        return _cmd_serve(args)

    configure_logging()
    log = get_logger("tts-cache.cli")
    set_request_id(str(uuid4())[:12])

    try:
        service = AudioService(load_settings(args.settings, missing_ok=True))
        if args.command == "generate":
            return _cmd_generate(service, args, log)
        if args.command == "fingerprint":
            return _cmd_fingerprint(service, args)
        return _cmd_sweep(service, args)
    except CacheError as e:
        fail(log, "cli_error", code=e.code, error=e.message)
        _emit(e.to_dict(), args.json)
        return 1
    except ConfigValidationError as e:
        fail(log, "config_error", error=str(e))
        _emit({"ok": False, "error": "CONFIG_ERROR", "message": str(e)}, args.json)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
