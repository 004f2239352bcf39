import argparse
from collections import Counter

from deckedit.core.extract.pptx_extractor import extract_pptx
from deckedit.core.model import TextElement

ap = argparse.ArgumentParser(description="Summarize the elements extracted from a .pptx")
ap.add_argument("path")
ap.add_argument("--top", type=int, default=10)
args = ap.parse_args()

slides = extract_pptx(args.path)

totals: Counter = Counter()
slides_summary = []

for slide in slides:
    kinds = Counter(el.type for el in slide.elements)
    text_chars = sum(
        len(el.content.strip()) for el in slide.elements if isinstance(el, TextElement)
    )
    totals.update(kinds)
    slides_summary.append((slide.id, kinds, text_chars))

print("slides:", len(slides))
for kind in ("text", "image", "table", "shape"):
    print(f"TOTAL {kind}:", totals.get(kind, 0))

print(f"\nTop {args.top} slides by text_chars:")
for si, kinds, tc in sorted(slides_summary, key=lambda x: x[2], reverse=True)[: args.top]:
    print(
        f"  slide {si:>3}: text={kinds.get('text', 0):>2}, images={kinds.get('image', 0):>2}, "
        f"tables={kinds.get('table', 0):>2}, shapes={kinds.get('shape', 0):>2}, text_chars={tc}"
    )
