from __future__ import annotations

import argparse
import json
from pathlib import Path
import sys
from typing import cast

from docsync.core.config import get_settings
from docsync.main import create_app


def build_schema() -> dict[str, object]:
    return create_app(get_settings()).openapi()


def export_openapi(output_path: Path | None) -> None:
    payload = json.dumps(build_schema(), indent=2, sort_keys=True) + "\n"
    if output_path is None:
        _ = sys.stdout.write(payload)
        return
    output_path.parent.mkdir(parents=True, exist_ok=True)
    _ = output_path.write_text(payload, encoding="utf-8")


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Export the docsync-server OpenAPI schema")
    _ = parser.add_argument(
        "--output",
        default="contracts/openapi.json",
        help="Output path, or '-' for stdout",
    )
    args = parser.parse_args(argv)

    output = cast(str, args.output)
    export_openapi(None if output == "-" else Path(output))


if __name__ == "__main__":
    main()
