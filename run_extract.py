#!/usr/bin/env python3
"""
Voice Actions — extraction dry run

Runs the extractor on a transcript and prints the extracted items as JSON.
Nothing is saved.

Usage:
    python run_extract.py note.txt --timezone Europe/Paris --language fr
    echo "remind me to call mom tomorrow at 3pm" | python run_extract.py -
"""

import sys
import json
import logging
import argparse
from pathlib import Path

from voice_engine.ai import GeminiClient
from voice_engine.config import load_config
from voice_engine.extractor import Extractor
from voice_engine.models import UserContext
from voice_engine.temporal import build_temporal_context


def main():
    parser = argparse.ArgumentParser(
        description="Extract tasks, reminders and notes from a voice transcript",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s transcript.txt
  %(prog)s transcript.txt --timezone America/New_York --language en
  cat transcript.txt | %(prog)s -

Environment:
  Set GEMINI_API_KEYS (or GEMINI_API_KEY) in the environment or .env
        """
    )

    parser.add_argument(
        "input",
        help="Transcript file, or - to read from stdin"
    )

    parser.add_argument(
        "--timezone",
        default=None,
        help="IANA timezone used to resolve 'today'/'tomorrow' (default: DEFAULT_TIMEZONE)"
    )

    parser.add_argument(
        "--language",
        default=None,
        help="ISO 639-1 language of the output (default: DEFAULT_LANGUAGE)"
    )

    parser.add_argument(
        "--summary",
        default=None,
        help="Summary to use instead of the generated one"
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Show pipeline logs"
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    config = load_config()
    if not config.gemini_api_keys:
        print("❌ Error: Gemini API key required")
        print("   Set GEMINI_API_KEYS or GEMINI_API_KEY")
        sys.exit(1)

    if args.input == "-":
        transcript = sys.stdin.read()
    else:
        path = Path(args.input)
        if not path.exists():
            print(f"❌ Error: File not found: {path}")
            sys.exit(1)
        transcript = path.read_text(encoding="utf-8")

    if not transcript.strip():
        print("❌ Error: Transcript is empty")
        sys.exit(1)

    language = args.language or config.default_language
    user = UserContext(user_id="cli", language=language, timezone=args.timezone)
    temporal = build_temporal_context(
        args.timezone, language, default_timezone=config.default_timezone
    )

    extractor = Extractor(GeminiClient(config.gemini_api_keys, config.gemini_model))
    items = extractor.extract(transcript, temporal, user, ai_summary=args.summary)

    print(json.dumps(items.to_wire(), indent=2, ensure_ascii=False))


if __name__ == "__main__":
    main()
