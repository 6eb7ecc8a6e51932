import argparse
import dataclasses
import logging
import os
import sys

from dotenv import load_dotenv
from PIL import Image

from sticker_cutline.config import parse_max_segment, settings_from_env
from sticker_cutline.path_emitter import write_cut_svg
from sticker_cutline.pipeline import trace_sticker
from sticker_cutline.raster import RasterImage


def main(argv=None):
    load_dotenv()

    p = argparse.ArgumentParser(description="Transparent PNG -> silhouette -> sticker cut line SVG")
    p.add_argument("--png", required=True, help="Input image with an alpha channel")
    p.add_argument("--outdir", default="output")
    p.add_argument("--name", default=None, help="Output base name (defaults to the PNG stem)")

    p.add_argument("--threshold", type=int, default=None, help="Alpha cut-off, 0-255 (foreground is strictly above)")
    p.add_argument("--offset", type=float, default=None, help="Cut line margin in pixels")
    p.add_argument("--scale", type=int, default=None, help="Fixed-point precision factor for offsetting")
    p.add_argument("--min-object-px", type=int, default=None, help="Drop specks of at most this many pixels (0 disables)")
    p.add_argument("--simplify", type=float, default=None, help="Douglas-Peucker tolerance in pixels (0 disables)")
    p.add_argument("--max-segment", default=None, help="Longest edge on the cut line in pixels (none or 0 disables)")
    p.add_argument("--no-image", action="store_true", help="Write only the cut line, without embedding the image")
    p.add_argument("-v", "--verbose", action="store_true")

    args = p.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )
    os.makedirs(args.outdir, exist_ok=True)

    settings = settings_from_env().with_overrides(
        threshold=args.threshold,
        offset=args.offset,
        scale=args.scale,
        min_object_px=args.min_object_px,
        simplify=args.simplify,
    )
    if args.max_segment is not None:
        try:
            max_segment = parse_max_segment(args.max_segment)
        except ValueError:
            p.error(f"--max-segment: invalid value {args.max_segment!r}")
        settings = dataclasses.replace(settings, max_segment=max_segment)

    name = args.name or os.path.splitext(os.path.basename(args.png))[0]
    with Image.open(args.png) as img:
        img.load()
        raster = RasterImage.from_pil(img)
        result = trace_sticker(raster, settings)
        if result.status == "no_silhouette":
            print(result.message, file=sys.stderr)
            return 1
        svg_path = write_cut_svg(
            os.path.join(args.outdir, f"{name}.svg"),
            result.cut_path,
            raster.width,
            raster.height,
            image=None if args.no_image else img,
        )

    print("Status:", result.status)
    if result.message:
        print(" Note:", result.message)
    print(" Contour points:", len(result.contour))
    print(" Cut line points:", result.cut_path.point_count)
    print(" SVG:", svg_path)
    return 0


if __name__ == "__main__":
    sys.exit(main())
