#!/usr/bin/env python3
"""
Create a printable PDF from generated dot set pairs.

This script takes the pair images written by generate_pairs.py and lays them out
on A4 pages, one below the other, for paper-based administration of the task.
"""

import argparse
import glob
import os
import re
from typing import List, Tuple

from PIL import Image
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import cm
from reportlab.pdfgen import canvas

# Constants
PAIR_WIDTH_CM = 15.0
OUTPUT_DIR = "output"
PDF_OUTPUT = "dot_pairs_printable.pdf"
PAIRS_PER_PAGE = 2

# A4 page dimensions in cm
A4_WIDTH_CM = 21.0
A4_HEIGHT_CM = 29.7

# Margins in cm
MARGIN_CM = 1.0

PAIR_FILE_PATTERN = re.compile(r"^pair_(\d+)\.png$")


def get_pair_files(output_dir: str = OUTPUT_DIR) -> List[str]:
    """
    Get all session pair images from the output directory.

    Args:
        output_dir: Directory containing the pair images

    Returns:
        List of pair image file paths, sorted by pair number
    """
    numbered = []
    for path in glob.glob(os.path.join(output_dir, "pair_*.png")):
        match = PAIR_FILE_PATTERN.match(os.path.basename(path))
        if match:
            numbered.append((int(match.group(1)), path))
    numbered.sort()

    if not numbered:
        raise FileNotFoundError(f"No pair files found in {output_dir}")

    print(f"Found {len(numbered)} pair files")
    return [path for _number, path in numbered]


def pair_height_cm(pair_file: str, pair_width_cm: float = PAIR_WIDTH_CM) -> float:
    with Image.open(pair_file) as img:
        width, height = img.size
    return pair_width_cm * height / width


def calculate_pair_layout(pair_width_cm: float, pair_height_cm: float) -> Tuple[float, float, float]:
    """
    Calculate the layout parameters for pairs on the page.

    Returns:
        Tuple of (start_x, start_y, spacing_y) in cm, start_y being the bottom of the first pair
    """
    available_height = A4_HEIGHT_CM - (2 * MARGIN_CM)
    if pair_width_cm > A4_WIDTH_CM - (2 * MARGIN_CM) or PAIRS_PER_PAGE * pair_height_cm > available_height:
        raise ValueError(f"Pairs of {pair_width_cm:.1f}x{pair_height_cm:.1f} cm do not fit {PAIRS_PER_PAGE} per A4 page")

    start_x = (A4_WIDTH_CM - pair_width_cm) / 2
    spacing_y = (available_height - (PAIRS_PER_PAGE * pair_height_cm)) / (PAIRS_PER_PAGE + 1)
    start_y = A4_HEIGHT_CM - MARGIN_CM - spacing_y - pair_height_cm
    return start_x, start_y, spacing_y


def add_separator_lines(canvas_obj, start_y: float, spacing_y: float, height_cm: float):
    """Draw dashed lines between the pairs on a page, to cut the sheet into single trials."""
    canvas_obj.setStrokeColorRGB(0.7, 0.7, 0.7)
    canvas_obj.setDash(2, 2)
    for row in range(1, PAIRS_PER_PAGE):
        y = start_y - (row - 1) * (height_cm + spacing_y) - spacing_y / 2
        canvas_obj.line(1 * cm, y * cm, (A4_WIDTH_CM - 1) * cm, y * cm)
    canvas_obj.setDash()
    canvas_obj.setStrokeColorRGB(0, 0, 0)


def create_pdf_with_pairs(
    pair_files: List[str],
    output_pdf: str = PDF_OUTPUT,
    pair_width_cm: float = PAIR_WIDTH_CM,
    add_guides: bool = False,
) -> str:
    """
    Create a PDF with the pair images arranged for printing.

    Args:
        pair_files: List of pair image file paths
        output_pdf: Output PDF filename
        pair_width_cm: Printed width of each pair
        add_guides: Draw dashed cutting lines between pairs

    Returns:
        Path of the written PDF
    """
    height_cm = pair_height_cm(pair_files[0], pair_width_cm)
    start_x, start_y, spacing_y = calculate_pair_layout(pair_width_cm, height_cm)

    c = canvas.Canvas(output_pdf, pagesize=A4)
    total_pages = (len(pair_files) + PAIRS_PER_PAGE - 1) // PAIRS_PER_PAGE

    print(f"Creating PDF with {len(pair_files)} pairs on {total_pages} pages...")

    for page_num in range(total_pages):
        print(f"Processing page {page_num + 1}/{total_pages}...")

        c.setFont("Helvetica", 10)
        c.drawString(1 * cm, 1 * cm, f"Page {page_num + 1} of {total_pages}")

        start_idx = page_num * PAIRS_PER_PAGE
        page_pairs = pair_files[start_idx:start_idx + PAIRS_PER_PAGE]

        for row, pair_file in enumerate(page_pairs):
            x = start_x
            y = start_y - row * (height_cm + spacing_y)
            c.drawImage(pair_file, x * cm, y * cm, pair_width_cm * cm, height_cm * cm)

            # Pair number below the pair
            pair_number = PAIR_FILE_PATTERN.match(os.path.basename(pair_file))
            label = pair_number.group(1) if pair_number else os.path.basename(pair_file)
            c.setFont("Helvetica", 8)
            c.drawString(x * cm, y * cm - 12, f"Pair {label}")

        if add_guides:
            add_separator_lines(c, start_y, spacing_y, height_cm)

        c.showPage()

    c.save()
    print(f"PDF created successfully: {output_pdf}")
    return output_pdf


def main():
    """Main function to create the printable PDF."""
    parser = argparse.ArgumentParser(description="Create a printable PDF from generated dot set pairs")
    parser.add_argument("--output", "-o", default=PDF_OUTPUT, help="Output PDF filename")
    parser.add_argument("--pairs", "-p", default=OUTPUT_DIR, help="Directory containing pair images")
    parser.add_argument("--width", "-w", type=float, default=PAIR_WIDTH_CM, help=f"Printed pair width in cm (default: {PAIR_WIDTH_CM})")
    parser.add_argument("--add-guides", action="store_true", help="Add cutting lines between pairs")

    args = parser.parse_args()

    try:
        pair_files = get_pair_files(args.pairs)
        create_pdf_with_pairs(pair_files, args.output, args.width, args.add_guides)

        print(f"\nPDF created successfully!")
        print(f"Output file: {args.output}")
        print(f"Total pairs: {len(pair_files)}")
        print(f"Pages: {(len(pair_files) + PAIRS_PER_PAGE - 1) // PAIRS_PER_PAGE}")
        if args.add_guides:
            print("Note: Cutting lines were added between pairs")

    except Exception as e:
        print(f"Error: {e}")
        return 1

    return 0


if __name__ == "__main__":
    exit(main())
