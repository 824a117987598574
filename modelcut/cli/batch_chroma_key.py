import argparse
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv
from tqdm import tqdm

# Load environment variables first
load_dotenv()

from ..exceptions import ModelCutError
from ..services.chroma_key_filter import ChromaKeyFilter
from ..services.image_service import ImageService
from ..services.green_screen_compositor import GreenScreenCompositor
from ..pipeline.background_remover import remove_background

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Key green backdrops out of every image in a folder and write transparent PNGs."
    )
    parser.add_argument("input_dir", type=Path)
    parser.add_argument("output_dir", type=Path)
    parser.add_argument("--tolerance", type=float, default=None,
                        help="keying tolerance (default: CHROMA_KEY_TOLERANCE or 40)")
    parser.add_argument("--recursive", action="store_true")
    parser.add_argument("--green-screen", action="store_true",
                        help="re-render each image on a green backdrop via the generation API first")
    parser.add_argument("--color", default=None, help="backdrop color for --green-screen (#RRGGBB)")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    # --- Centralized Logging Configuration ---
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)-25s - %(levelname)-8s - %(message)s',
        datefmt='%H:%M:%S'
    )

    image_service = ImageService()
    chroma_key_filter = ChromaKeyFilter(tolerance=args.tolerance)
    compositor = None
    if args.green_screen:
        compositor = GreenScreenCompositor()

    try:
        gallery = list(image_service.stream_gallery(args.input_dir, recursive=args.recursive))
    except NotADirectoryError:
        logger.error(f"Not a directory: {args.input_dir}")
        return 2

    args.output_dir.mkdir(parents=True, exist_ok=True)
    failures = 0
    written = set()
    for img in tqdm(gallery, desc="chroma-key", ncols=70):
        try:
            if compositor is not None:
                keyed = remove_background(img, compositor=compositor,
                                          chroma_key_filter=chroma_key_filter,
                                          color=args.color or compositor.default_color)
            else:
                keyed = chroma_key_filter.apply(img)
        except ModelCutError as err:
            failures += 1
            logger.error(f"{img.path}: {err}")
            continue
        # mirror the input tree
        relative = Path(img.path).relative_to(args.input_dir)
        keyed.path = args.output_dir / relative.with_suffix(".png")
        if keyed.path in written:
            logger.warning(f"{img.path}: overwrites {keyed.path} written from another source file")
        written.add(keyed.path)
        image_service.save(keyed)

    logger.info(f"Keyed {len(gallery) - failures}/{len(gallery)} images into {args.output_dir}")
    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
