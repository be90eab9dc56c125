"""Grand Central Terminus launcher.

  python main.py serve [--data-dir DIR] [--host H] [--port P] [--reload]
  python main.py validate [--presets-dir DIR]
"""

import argparse
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

ROOT = Path(__file__).parent
load_dotenv(ROOT / ".env")

HOST = os.getenv("HOST", "0.0.0.0")
PORT = os.getenv("PORT", "13013")


def serve(args: argparse.Namespace) -> int:
    import uvicorn

    if args.data_dir:
        os.environ["DATA_DIR"] = str(args.data_dir.resolve())
    print(f"Starting backend on http://localhost:{args.port} ...")
    uvicorn.run("terminus.app:app", host=args.host, port=int(args.port), reload=args.reload)
    return 0


def validate(args: argparse.Namespace) -> int:
    from terminus.graph import load_story, validate_story

    story = load_story(args.presets_dir)
    issues = validate_story(story)
    for issue in issues:
        print(f"{issue.level.upper():8} {issue.node_id}: {issue.message}")
    errors = sum(1 for i in issues if i.level == "error")
    print(f"{len(story.nodes)} nodes, {errors} errors, {len(issues) - errors} warnings")
    return 1 if errors else 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Grand Central Terminus launcher")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p_serve = sub.add_parser("serve", help="Run the HTTP API")
    p_serve.add_argument("--data-dir", type=Path, default=None,
                         help="Data storage directory (default: ./data)")
    p_serve.add_argument("--host", default=HOST)
    p_serve.add_argument("--port", default=PORT)
    p_serve.add_argument("--reload", action="store_true", help="Reload on code changes")
    p_serve.set_defaults(func=serve)

    p_validate = sub.add_parser("validate", help="Check story presets for authoring defects")
    p_validate.add_argument("--presets-dir", type=Path, default=ROOT / "presets")
    p_validate.set_defaults(func=validate)

    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
