from __future__ import annotations

import argparse
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Any, List

import orjson
from jsonschema import Draft202012Validator

from deckedit.core.model import Slide
from deckedit.exceptions import EditDocumentError

SLIDES_SCHEMA = "slides.schema.json"


def load_json(path: Path) -> Any:
    return orjson.loads(path.read_bytes())


@lru_cache(maxsize=None)
def _packaged_schema(name: str) -> dict:
    ref = resources.files("deckedit.core").joinpath("schemas", name)
    return orjson.loads(ref.read_bytes())


def _validator(schema: dict | None = None) -> Draft202012Validator:
    return Draft202012Validator(schema if schema is not None else _packaged_schema(SLIDES_SCHEMA))


def _format_path(error: Any) -> str:
    path = "$"
    for p in error.path:
        path += f"[{p!r}]" if isinstance(p, str) else f"[{p}]"
    return path


def validate_slides(instance: Any, schema: dict | None = None) -> List[str]:
    """Validation messages for an edited slide document. Empty means valid."""
    errors = sorted(_validator(schema).iter_errors(instance), key=lambda e: list(e.path))
    return [f"{_format_path(e)}: {e.message}" for e in errors]


def load_edited_slides(payload: str | bytes | list | dict) -> List[Slide]:
    """Parse and validate an edited slide document.

    Accepts JSON text or an already-decoded list (or ``{"slides": [...]}``).
    """
    if isinstance(payload, (str, bytes, bytearray)):
        try:
            payload = orjson.loads(payload)
        except orjson.JSONDecodeError as exc:
            raise EditDocumentError(f"Edited slides are not valid JSON: {exc}") from exc
    if isinstance(payload, dict) and "slides" in payload:
        payload = payload["slides"]

    errors = validate_slides(payload)
    if errors:
        raise EditDocumentError(
            f"Edited slides do not conform to {SLIDES_SCHEMA} ({len(errors)} errors)", errors
        )
    return [Slide.from_dict(s) for s in payload]


def main() -> int:
    ap = argparse.ArgumentParser()
    ap.add_argument("--schema", help="path to *.schema.json (default: packaged slides schema)")
    ap.add_argument("--instance", required=True, help="path to json to validate")
    args = ap.parse_args()

    instance_path = Path(args.instance)
    schema = load_json(Path(args.schema)) if args.schema else None
    schema_name = args.schema or SLIDES_SCHEMA

    try:
        inst = load_json(instance_path)
    except (OSError, orjson.JSONDecodeError) as exc:
        print(f"[NG] cannot read {instance_path}: {exc}")
        return 2

    v = _validator(schema)
    errors = sorted(v.iter_errors(inst), key=lambda e: list(e.path))

    if not errors:
        print(f"[OK] {instance_path} conforms to {schema_name}")
        return 0

    print(f"[NG] {instance_path} does NOT conform to {schema_name}")
    for i, e in enumerate(errors, 1):
        print(f"  {i}. path={_format_path(e)}")
        print(f"     message={e.message}")
        if e.context:
            for c in e.context[:3]:
                print(f"     context={c.message}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
