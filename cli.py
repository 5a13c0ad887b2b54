#!/usr/bin/env python3
import argparse
import asyncio
import logging
import os
import sys
from collections import namedtuple

import numpy as np
from PIL import Image, ImageDraw, UnidentifiedImageError

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

# Each detected art pixel is rendered as an N x N block of this many output pixels
DEFAULT_OUTPUT_MULTIPLIER = 8
# Used when no image has produced a pixel size yet
DEFAULT_SCALE = 1

# Change-point markers in the analysis preview
MARKER_SIZE = 3
MARKER_COLOR = (255, 0, 0, 255)


class DecodeError(Exception):
    """Raised when an input file cannot be read or decoded as an image."""

    pass


class Run(namedtuple("Run", ["start", "end"])):
    """Half-open span of rows [start, end) that are identical to each other."""

    __slots__ = ()

    @property
    def length(self):
        return self.end - self.start


def most_common(values):
    """
    Find the most frequent value in a sequence.

    Counts are taken in a single pass. On a tie the value that reached the
    top count first wins, so [1, 1, 2, 2] gives 1 and [2, 2, 3, 3, 3, 2]
    gives 3. Works for any hashable values.

    Returns:
    - (value, count) for the winning value
    - (None, 0) if the sequence is empty
    """
    counts = {}
    best_value = None
    max_count = 0

    for value in values:
        count = counts.get(value, 0) + 1
        counts[value] = count
        # Strictly greater: a later value has to beat the leader, not match it
        if count > max_count:
            max_count = count
            best_value = value

    return best_value, max_count


class PixelArtUpscaler:
    def __init__(self, output_multiplier=DEFAULT_OUTPUT_MULTIPLIER):
        self.output_multiplier = output_multiplier
        # Last pixel size that was actually detected (None until the first one)
        self.scale = None

    def compute_runs(self, img):
        """
        Split the rows of an image into runs of identical rows.

        A row starts a new run when any byte of any pixel differs from the
        row above it. Only runs that end at such a change are returned; the
        rows after the last change are left out, so an image whose rows are
        all the same gives an empty list.

        Parameters:
        - img: PIL Image or numpy array of shape (height, width[, channels])

        Returns:
        - List of Run tuples, top to bottom
        """
        img_array = np.asarray(img)
        height = img_array.shape[0] if img_array.ndim else 0

        runs = []
        prev_change = 0
        for y in range(1, height):
            if not np.array_equal(img_array[y], img_array[y - 1]):
                logger.debug(f"Change point at row {y}")
                runs.append(Run(prev_change, y))
                prev_change = y

        return runs

    def detect(self, runs):
        """
        Pick the pixel size from a list of runs.

        The most common run length wins. When there are no runs the last
        detected scale is returned unchanged (or DEFAULT_SCALE if nothing
        has been detected yet).
        """
        length, count = most_common([run.length for run in runs])

        if not length:
            fallback = self.scale if self.scale is not None else DEFAULT_SCALE
            logger.warning(f"No row changes found, keeping pixel size {fallback}")
            return fallback

        logger.info(f"Detected pixel size {length} ({count} of {len(runs)} runs)")
        self.scale = length
        return length

    def detect_pixel_scale(self, img):
        """Analyze an image and return the detected pixel size."""
        return self.detect(self.compute_runs(img))

    def upscale_image(self, img, scale=None, smooth=False, multiplier=None):
        """
        Re-render an image at scale * multiplier times its size.

        Parameters:
        - img: PIL Image to render
        - scale: Pixel size to render at (defaults to the last detected one)
        - smooth: Use bicubic filtering instead of nearest neighbor
        - multiplier: Output multiplier (defaults to self.output_multiplier)

        Returns:
        - New PIL Image
        """
        if scale is None:
            scale = self.scale if self.scale is not None else DEFAULT_SCALE
        if multiplier is None:
            multiplier = self.output_multiplier

        factor = scale * multiplier
        width, height = img.size

        # NEAREST keeps the hard block edges; BICUBIC is only for a soft look
        resample = Image.BICUBIC if smooth else Image.NEAREST
        return img.resize((width * factor, height * factor), resample)

    def render_analysis_preview(self, img, runs=None):
        """
        Draw a marker at the left edge of every change-point row.

        The image is copied at its native size; the input is not modified.
        """
        if runs is None:
            runs = self.compute_runs(img)

        preview = img.convert("RGBA")
        draw = ImageDraw.Draw(preview)
        marker_width = min(MARKER_SIZE, preview.width)
        for run in runs:
            draw.rectangle([0, run.end, marker_width - 1, run.end], fill=MARKER_COLOR)

        return preview

    def load_image(self, file_path):
        """
        Decode an image file into an RGBA PIL Image.

        Raises DecodeError if the file can't be read or isn't an image.
        """
        try:
            with Image.open(file_path) as img:
                img.load()
                return img.convert("RGBA")
        except (OSError, UnidentifiedImageError, ValueError) as e:
            raise DecodeError(f"Could not decode {file_path}: {e}") from e

    async def load_image_async(self, file_path):
        """Decode an image file without blocking the event loop."""
        return await asyncio.to_thread(self.load_image, file_path)

    def get_output_path(self, input_path, suffix="clean"):
        """Generate an output path for the processed image."""
        dir_name = os.path.dirname(input_path)
        file_name = os.path.basename(input_path)
        name, ext = os.path.splitext(file_name)

        output_path = os.path.join(dir_name, f"{name}_{suffix}.png")

        # Ensure we don't overwrite existing files
        counter = 1
        while os.path.exists(output_path):
            output_path = os.path.join(dir_name, f"{name}_{suffix}_{counter}.png")
            counter += 1

        return output_path

    def process_image(self, file_path, output_path=None, force_scale=None, preview=False, smooth=False):
        """
        Process a single image file.

        Parameters:
        - file_path: Path to the image file
        - output_path: Where to save the result (default: next to the input)
        - force_scale: Use this pixel size instead of detecting it
        - preview: Also save the change-point analysis preview
        - smooth: Render with a smooth filter instead of nearest neighbor

        Returns:
        - Tuple of (output path, preview path or None)
        """
        img = self.load_image(file_path)
        logger.info(f"Loaded {os.path.basename(file_path)} ({img.width}x{img.height})")

        runs = self.compute_runs(img)
        if force_scale is not None:
            scale = force_scale
            logger.info(f"Using forced pixel size {scale}")
        else:
            scale = self.detect(runs)

        clean_img = self.upscale_image(img, scale, smooth=smooth)

        if output_path is None:
            total = scale * self.output_multiplier
            output_path = self.get_output_path(file_path, suffix=f"clean_{total}x")
        clean_img.save(output_path)
        logger.info(f"Saved {clean_img.width}x{clean_img.height} image to {output_path}")

        preview_path = None
        if preview:
            preview_img = self.render_analysis_preview(img, runs)
            preview_path = self.get_output_path(file_path, suffix="analysis")
            preview_img.save(preview_path)
            logger.info(f"Saved analysis preview to {preview_path}")

        return output_path, preview_path


def main(argv=None):
    parser = argparse.ArgumentParser(description='Detect the pixel size of upscaled pixel art and re-render it with crisp nearest neighbor pixels')
    parser.add_argument('image_paths', nargs='+', metavar='image_path', help='Image file(s) to process, in order')
    parser.add_argument('--multiplier', type=int, default=DEFAULT_OUTPUT_MULTIPLIER, help=f'Output size per detected pixel (default: {DEFAULT_OUTPUT_MULTIPLIER})')
    parser.add_argument('--scale', type=int, help='Force a specific pixel size instead of detecting it')
    parser.add_argument('--output', help='Output file path (only with a single image)')
    parser.add_argument('--preview', action='store_true', help='Also save an analysis preview marking every detected row change')
    parser.add_argument('--smooth', action='store_true', help='Use smooth filtering instead of nearest neighbor')
    parser.add_argument('-v', '--verbose', action='store_true', help='Show debug output')

    args = parser.parse_args(argv)

    if args.multiplier < 1:
        parser.error('--multiplier must be at least 1')
    if args.scale is not None and args.scale < 1:
        parser.error('--scale must be at least 1')
    if args.output and len(args.image_paths) > 1:
        parser.error('--output can only be used with a single image')

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )

    upscaler = PixelArtUpscaler(output_multiplier=args.multiplier)

    failures = 0
    for image_path in args.image_paths:
        try:
            upscaler.process_image(
                image_path,
                output_path=args.output,
                force_scale=args.scale,
                preview=args.preview,
                smooth=args.smooth,
            )
        except DecodeError as e:
            # Keep going; the previous scale stays in place for the next image
            logger.error(str(e))
            failures += 1

    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
