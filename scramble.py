# Copyright (c) 2025 Rafik Hamza, Ph.D.
# All rights reserved.
#
# Date of last edit: November 28, 2025
#
# Description:
# Command line tool that scrambles or unscrambles an image file with a numeric key.

"""
Pixel Scramble Command Line
===========================

Scrambles (``enc``) or restores (``dec``) the pixels of an image file in place
or into a new file. The key is an unsigned 64-bit integer; with
``--passphrase`` any text is accepted and hashed to a 64-bit key with BLAKE3.

Usage Examples:
- pixel-scramble enc 1234567890 photo.png scrambled.png
- pixel-scramble dec 1234567890 scrambled.png restored.png
- pixel-scramble enc "correct horse" photo.png --passphrase   # overwrites photo.png
"""

import argparse
import os
import sys
import time
from typing import List, Optional

import blake3

from scramble_core import KEY_BITS, Image, check_key, decrypt_image, encrypt_image
from scramble_io import ImageIOError, load_image, save_image


def derive_key_from_passphrase(passphrase: str) -> int:
    """Derive a 64-bit key from any passphrase using BLAKE3."""
    digest = blake3.blake3(passphrase.encode('utf-8')).digest(length=KEY_BITS // 8)
    return int.from_bytes(digest, 'little')


def parse_key(text: str) -> int:
    """Parse a decimal or 0x-prefixed key and check it fits in 64 unsigned bits."""
    try:
        value = int(text, 0)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid key '{text}': expected an integer") from None
    try:
        return check_key(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"key {value} is outside [0, 2**{KEY_BITS})") from None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='pixel-scramble',
        description='Reversibly scramble the pixels of an image with a numeric key')
    parser.add_argument('mode', choices=['enc', 'dec'],
                        help='encrypt an image or decrypt an encrypted one')
    parser.add_argument('key',
                        help='the encryption/decryption key (unsigned 64-bit integer)')
    parser.add_argument('input', help='image input path')
    parser.add_argument('output', nargs='?', default=None,
                        help='image output path; if omitted, the input file is overwritten')
    parser.add_argument('--passphrase', action='store_true',
                        help='treat KEY as a passphrase and derive the 64-bit key with BLAKE3')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='print timing and file size information')
    return parser


def _print_banner(title: str, input_path: str, output_path: str, image: Image):
    print("=" * 60)
    print(title)
    print("=" * 60)
    print(f"Input file: {input_path}")
    print(f"Output file: {output_path}")
    print(f"Image: {image.width}x{image.height}, {image.channel_count} byte(s) per pixel, "
          f"format {image.format}, mode {image.mode}")


def run(mode: str, key: int, input_path: str, output_path: str, verbose: bool = False):
    """Load, transform and save one image. ImageIOError propagates to the caller."""
    image = load_image(input_path)
    input_size = os.path.getsize(input_path)
    if verbose:
        title = "IMAGE ENCRYPTION" if mode == 'enc' else "IMAGE DECRYPTION"
        _print_banner(title, input_path, output_path, image)

    start_time = time.perf_counter()
    if mode == 'enc':
        encrypt_image(image, key)
    else:
        decrypt_image(image, key)
    elapsed = time.perf_counter() - start_time

    save_image(output_path, image)

    if verbose:
        print(f"   Processing time: {elapsed:.3f} seconds")
        print(f"   Input size: {input_size:,} bytes")
        print(f"   Output size: {os.path.getsize(output_path):,} bytes")
        if elapsed > 0:
            print(f"   Speed: {image.dim / elapsed / 1e6:.2f} Mpixel/s")


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.passphrase:
        if not args.key:
            parser.error("passphrase cannot be empty")
        key = derive_key_from_passphrase(args.key)
    else:
        try:
            key = parse_key(args.key)
        except argparse.ArgumentTypeError as e:
            parser.error(str(e))

    output = args.output if args.output is not None else args.input

    try:
        run(args.mode, key, args.input, output, verbose=args.verbose)
    except ImageIOError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
