from __future__ import annotations

import argparse
from importlib import resources
from pathlib import Path
from typing import Any, Callable

import orjson

from deckedit.config import Settings, get_settings, override_settings
from deckedit.exceptions import DeckEditError, EditDocumentError
from deckedit.logging import configure_logging
from deckedit.service import DeckService, GeneratedDeck
from deckedit.session import SessionContext


def _load_json(path: Path) -> Any:
    return orjson.loads(path.read_bytes())


def _write_json(path: Path, obj: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(orjson.dumps(obj, option=orjson.OPT_INDENT_2))


def _service() -> DeckService:
    return DeckService(SessionContext(settings=get_settings()))


def _print_errors(errors: list[str], limit: int = 30) -> None:
    for m in errors[:limit]:
        print(f"  - {m}")
    if len(errors) > limit:
        print(f"  ... ({len(errors)} errors)")


def _guard(fn: Callable[[argparse.Namespace], int]) -> Callable[[argparse.Namespace], int]:
    """Turn engine errors into an [NG] line and exit code 2."""

    def wrapped(args: argparse.Namespace) -> int:
        try:
            return fn(args)
        except EditDocumentError as e:
            print(f"[NG] {e.message}")
            _print_errors(e.errors)
            return 2
        except DeckEditError as e:
            print(f"[NG] {e.message}")
            return 2
        except OSError as e:
            print(f"[NG] {e}")
            return 2

    wrapped.__name__ = fn.__name__
    wrapped.__doc__ = fn.__doc__
    return wrapped


def _emit_deck(deck: GeneratedDeck, out: str | None, label: str) -> int:
    target = deck.path
    if out:
        target = Path(out).resolve()
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(deck.data)
    if deck.warnings:
        print(f"[OK] {label} with warnings: {target}")
        _print_errors(deck.warnings)
    else:
        print(f"[OK] {label}: {target}")
    if deck.modified_slides:
        print(f"  modified slides: {', '.join(str(n) for n in deck.modified_slides)}")
    return 0


def _read_grid(path: str | None) -> list | None:
    if not path:
        return None
    grid = _load_json(Path(path))
    if isinstance(grid, dict):
        grid = grid.get("tableData")
    return grid if isinstance(grid, list) else None


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def cmd_paths(_: argparse.Namespace) -> int:
    s = get_settings()
    schema = resources.files("deckedit.core").joinpath("schemas", "slides.schema.json")
    print(f"uploads_dir: {Path(s.storage.uploads_dir).expanduser().resolve()}")
    print(f"output_dir: {Path(s.storage.output_dir).expanduser().resolve()}")
    print(f"templates_dir: {Path(s.storage.templates_dir).expanduser().resolve()}")
    print(f"schema.slides: {schema}")
    return 0


@_guard
def cmd_extract(args: argparse.Namespace) -> int:
    in_path = Path(args.input).resolve()
    out_path = Path(args.out).resolve()

    if not in_path.exists():
        print(f"[NG] input not found: {in_path}")
        return 2
    if in_path.suffix.lower() != ".pptx":
        print(f"[NG] unsupported input type: {in_path.suffix} (use .pptx)")
        return 2

    result = _service().upload(in_path)
    _write_json(out_path, result)
    n_el = sum(len(s["elements"]) for s in result["slides"])
    print(f"[OK] extracted: {out_path}")
    print(f"  filename: {result['filename']}")
    print(f"  slides: {len(result['slides'])}, elements: {n_el}")
    return 0


@_guard
def cmd_generate(args: argparse.Namespace) -> int:
    payload = Path(args.slides).read_bytes()
    deck = _service().generate(payload, args.file, template_name=args.template_name)
    return _emit_deck(deck, args.out, "generated")


@_guard
def cmd_insert_table(args: argparse.Namespace) -> int:
    deck = _service().insert_table(
        args.file,
        args.slide,
        _read_grid(args.grid),
        x=args.x,
        y=args.y,
        width=args.width,
        height=args.height,
    )
    return _emit_deck(deck, args.out, "table inserted")


@_guard
def cmd_replace_table(args: argparse.Namespace) -> int:
    deck = _service().replace_table(
        args.file, args.slide, _read_grid(args.grid), x=args.x, y=args.y
    )
    return _emit_deck(deck, args.out, "table replaced")


@_guard
def cmd_normalize(args: argparse.Namespace) -> int:
    in_path = Path(args.input).resolve()
    out_path = Path(args.out).resolve() if args.out else in_path.with_name(f"fixed-{in_path.name}")
    data = _service().normalize(in_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_bytes(data)
    print(f"[OK] normalized: {out_path}")
    return 0


@_guard
def cmd_templates_save(args: argparse.Namespace) -> int:
    payload = Path(args.slides).read_bytes()
    res = _service().save_template(
        args.name, payload, filename=args.file, original_path=args.original
    )
    verb = "saved" if res["created"] else "updated"
    print(f"[OK] template {verb}: {res['templateId']}")
    if not res["originalFilePath"]:
        print("  (no original file recorded; this template cannot be generated)")
    return 0


@_guard
def cmd_templates_list(_: argparse.Namespace) -> int:
    rows = _service().list_templates()
    if not rows:
        print("[OK] no templates")
        return 0
    print(f"[OK] {len(rows)} templates")
    for t in rows:
        flag = "original" if t["hasOriginalFile"] else "no-original"
        print(f"  {t['_id']}  {t['templateName']}  slides={t['slideCount']}  {flag}  {t['createdAt']}")
    return 0


@_guard
def cmd_templates_show(args: argparse.Namespace) -> int:
    t = _service().get_template(args.id)
    if args.out:
        _write_json(Path(args.out).resolve(), t)
        print(f"[OK] template written: {Path(args.out).resolve()}")
    else:
        print(orjson.dumps(t, option=orjson.OPT_INDENT_2).decode("utf-8"))
    return 0


@_guard
def cmd_templates_delete(args: argparse.Namespace) -> int:
    _service().delete_template(args.id)
    print(f"[OK] template deleted: {args.id}")
    return 0


@_guard
def cmd_templates_generate(args: argparse.Namespace) -> int:
    deck = _service().generate_from_template(args.id)
    return _emit_deck(deck, args.out, "generated")


def _add_table_args(p: argparse.ArgumentParser, *, with_size: bool) -> None:
    p.add_argument("--file", required=True, help="uploaded filename or path of the original .pptx")
    p.add_argument("--slide", required=True, type=int, help="1-based slide number")
    p.add_argument("--grid", help="json file with a list of rows (or {\"tableData\": [...]})")
    p.add_argument("--x", type=float, help="inches")
    p.add_argument("--y", type=float, help="inches")
    if with_size:
        p.add_argument("--width", type=float, help="inches")
        p.add_argument("--height", type=float, help="inches")
    p.add_argument("--out", help="also write the result here")


def main() -> None:
    parser = argparse.ArgumentParser(prog="deckedit")
    parser.add_argument("--config", help="yaml config file")
    parser.add_argument("--log-level", help="debug|info|warning|error")
    parser.add_argument("--log-format", choices=["console", "json"])
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_paths = sub.add_parser("paths", help="show storage paths")
    p_paths.set_defaults(func=cmd_paths)

    p_ext = sub.add_parser("extract", help="upload a .pptx and write its element model as json")
    p_ext.add_argument("input", help="path to input .pptx")
    p_ext.add_argument("--out", required=True, help="output json path")
    p_ext.set_defaults(func=cmd_extract)

    p_gen = sub.add_parser("generate", help="patch edited slides into the original deck")
    p_gen.add_argument("--slides", required=True, help="edited slides json")
    p_gen.add_argument("--file", required=True, help="uploaded filename or path of the original .pptx")
    p_gen.add_argument("--template-name", help="name used for the output file")
    p_gen.add_argument("--out", help="also write the result here")
    p_gen.set_defaults(func=cmd_generate)

    p_ins = sub.add_parser("insert-table", help="add a table to one slide")
    _add_table_args(p_ins, with_size=True)
    p_ins.set_defaults(func=cmd_insert_table)

    p_rep = sub.add_parser("replace-table", help="replace the table nearest to --x/--y")
    _add_table_args(p_rep, with_size=False)
    p_rep.set_defaults(func=cmd_replace_table)

    p_norm = sub.add_parser("normalize", help="rewrite slide transforms as integer EMUs")
    p_norm.add_argument("input", help="path to input .pptx")
    p_norm.add_argument("--out", help="output .pptx path (default: fixed-<name> beside input)")
    p_norm.set_defaults(func=cmd_normalize)

    p_tpl = sub.add_parser("templates", help="manage saved templates")
    tsub = p_tpl.add_subparsers(dest="tcmd", required=True)

    t_save = tsub.add_parser("save", help="save (or update by name) a template")
    t_save.add_argument("--name", required=True)
    t_save.add_argument("--slides", required=True, help="edited slides json")
    t_save.add_argument("--file", help="uploaded filename the slides came from")
    t_save.add_argument("--original", help="path of the original .pptx")
    t_save.set_defaults(func=cmd_templates_save)

    t_list = tsub.add_parser("list", help="list templates, newest first")
    t_list.set_defaults(func=cmd_templates_list)

    t_show = tsub.add_parser("show", help="print one template")
    t_show.add_argument("id")
    t_show.add_argument("--out", help="write json here instead of stdout")
    t_show.set_defaults(func=cmd_templates_show)

    t_del = tsub.add_parser("delete", help="delete a template")
    t_del.add_argument("id")
    t_del.set_defaults(func=cmd_templates_delete)

    t_gen = tsub.add_parser("generate", help="regenerate a deck from a template")
    t_gen.add_argument("id")
    t_gen.add_argument("--out", help="also write the result here")
    t_gen.set_defaults(func=cmd_templates_generate)

    args = parser.parse_args()

    settings = Settings.load(Path(args.config) if args.config else None)
    override_settings(settings)
    configure_logging(
        level=args.log_level or settings.logging.level,
        format=args.log_format or settings.logging.format,
        log_file=str(settings.logging.file) if settings.logging.file else None,
    )
    raise SystemExit(args.func(args))


if __name__ == "__main__":
    main()
