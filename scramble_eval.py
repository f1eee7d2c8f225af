# Copyright (c) 2025 Rafik Hamza, Ph.D.
# All rights reserved.
#
# Date of last edit: November 28, 2025
#
# Description:
# Experimental evaluation script for the keyed pixel scrambler.
"""
Scrambling Evaluation Script
============================

Measures how well the keyed pixel scrambler hides image content:
- Security metrics (NPCR, UACI, entropy, scan-order pixel correlation)
- Exact reconstruction check and timings
- Key sensitivity analysis
- Plaintext sensitivity analysis (single pixel change)
- Visual analysis with images and histograms

Without input images the evaluation runs on a synthetic test card.
"""

import os
import time
import argparse
import dataclasses
from typing import Any, Dict, List, Optional, Sequence, TypedDict

import numpy as np
import numpy.typing as npt
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt

from scramble_core import (
    Image, check_key, encrypt_image, decrypt_image,
    calculate_npcr, calculate_uaci, calculate_entropy,
    calculate_corr_channels, calculate_mse,
)
from scramble_io import ImageIOError, load_image
from scramble import parse_key

DEFAULT_KEY = 0x5EED_2025
SYNTHETIC_NAME = 'synthetic test card'

# Expected values for an ideal 8-bit cipher image
OPTIMAL_NPCR = 99.6094
OPTIMAL_UACI = 33.4635
OPTIMAL_ENTROPY = 8.0


class ImageMetrics(TypedDict):
    npcr: float
    uaci: float
    entropy_original: float
    entropy_encrypted: float
    correlation_original: float
    correlation_encrypted: float
    exact: bool
    enc_time: float
    dec_time: float


def synthetic_test_card(size: int = 128) -> npt.NDArray[np.uint8]:
    """Smooth RGB gradient with a few solid shapes: highly correlated, low entropy content."""
    y, x = np.mgrid[0:size, 0:size]
    card = np.empty((size, size, 3), dtype=np.uint8)
    card[..., 0] = (255 * x / max(size - 1, 1)).astype(np.uint8)
    card[..., 1] = (255 * y / max(size - 1, 1)).astype(np.uint8)
    card[..., 2] = 128
    q = size // 4
    card[q:2 * q, q:2 * q] = (255, 255, 255)
    disk = (x - 3 * q) ** 2 + (y - 3 * q) ** 2 < (q // 2) ** 2
    card[disk] = (0, 0, 0)
    return card


def _displayable(arr: npt.NDArray[np.uint8]) -> npt.NDArray[np.uint8]:
    # imshow takes 2-D, RGB or RGBA arrays only
    if arr.ndim == 3 and arr.shape[2] == 2:
        return arr[..., 0]
    return arr


class ScrambleEvaluation:
    def __init__(self, output_dir: str = "scramble_results", images: Optional[Sequence[str]] = None,
                 key: int = DEFAULT_KEY):
        self.output_dir = output_dir
        os.makedirs(output_dir, exist_ok=True)
        self.key = check_key(key)
        self.test_images = self._load_test_images(images or [])

        print("=" * 80)
        print("KEYED PIXEL SCRAMBLER EVALUATION")
        print("=" * 80)
        print(f"Output directory: {self.output_dir}")
        print(f"Test images: {list(self.test_images)}")
        print(f"Key: {self.key:#x}")
        print()

    def _load_test_images(self, paths: Sequence[str]) -> Dict[str, Image]:
        loaded: Dict[str, Image] = {}
        for path in paths:
            try:
                loaded[os.path.basename(path)] = load_image(path)
            except ImageIOError as e:
                print(f"Warning: skipping {path}: {e}")
        if not loaded:
            loaded[SYNTHETIC_NAME] = Image.from_array(synthetic_test_card(), mode='RGB', format='PNG')
        return loaded

    def _encrypted(self, image: Image, key: int) -> Image:
        out = dataclasses.replace(image)
        encrypt_image(out, key)
        return out

    def run_comprehensive_evaluation(self) -> Dict[str, Any]:
        """Run all evaluations and write the report."""
        print("1. SECURITY METRICS ANALYSIS")
        print("-" * 40)
        security_results = self.security_metrics_analysis()

        print("\n2. KEY SENSITIVITY ANALYSIS")
        print("-" * 40)
        key_sensitivity_results = self.key_sensitivity_analysis()

        print("\n3. PLAINTEXT SENSITIVITY ANALYSIS")
        print("-" * 40)
        plaintext_results = self.plaintext_sensitivity_analysis()

        print("\n4. VISUAL ANALYSIS")
        print("-" * 40)
        visual_results = self.visual_analysis()

        all_results = {
            'security': security_results,
            'key_sensitivity': key_sensitivity_results,
            'plaintext': plaintext_results,
            'visual': visual_results,
        }
        self.generate_final_report(all_results)

        print("\n" + "=" * 80)
        print("EVALUATION COMPLETED")
        print("=" * 80)
        return all_results

    def security_metrics_analysis(self) -> Dict[str, ImageMetrics]:
        """Compare each image with its scrambled version and check exact recovery."""
        results: Dict[str, ImageMetrics] = {}
        for name, image in self.test_images.items():
            print(f"Processing {name}...")
            work = dataclasses.replace(image)

            start_time = time.perf_counter()
            encrypt_image(work, self.key)
            enc_time = time.perf_counter() - start_time
            encrypted = work.to_array()

            start_time = time.perf_counter()
            decrypt_image(work, self.key)
            dec_time = time.perf_counter() - start_time

            original = image.to_array()
            results[name] = ImageMetrics(
                npcr=calculate_npcr(original, encrypted),
                uaci=calculate_uaci(original, encrypted),
                entropy_original=calculate_entropy(original),
                entropy_encrypted=calculate_entropy(encrypted),
                correlation_original=float(np.mean(calculate_corr_channels(original))),
                correlation_encrypted=float(np.mean(calculate_corr_channels(encrypted))),
                exact=work.pixels == image.pixels,
                enc_time=enc_time,
                dec_time=dec_time,
            )
            m = results[name]
            print(f"  NPCR: {m['npcr']:.4f}%  UACI: {m['uaci']:.4f}%")
            print(f"  Entropy: {m['entropy_original']:.4f} -> {m['entropy_encrypted']:.4f}")
            print(f"  Correlation: {m['correlation_original']:.4f} -> {m['correlation_encrypted']:.4f}")
            print(f"  Exact reconstruction: {m['exact']}  ({enc_time:.3f}s / {dec_time:.3f}s)")
        return results

    def key_variants(self) -> Dict[str, int]:
        return {
            'Single Bit Flip': self.key ^ 1,
            'Key Plus One': (self.key + 1) % (1 << 64),
            'Completely Different Key': self.key ^ 0xA5A5_A5A5_A5A5_A5A5,
        }

    def key_sensitivity_analysis(self) -> Dict[str, Dict[str, float]]:
        """Encrypt the first image under slightly different keys and compare the cipher images."""
        name, image = next(iter(self.test_images.items()))
        print(f"Using {name} for key sensitivity analysis...")
        reference = self._encrypted(image, self.key).to_array()

        results: Dict[str, Dict[str, float]] = {}
        for label, variant in self.key_variants().items():
            other = self._encrypted(image, variant).to_array()
            # Decrypting with the wrong key should not reveal the image either
            wrong = self._encrypted(image, self.key)
            decrypt_image(wrong, variant)
            results[label] = {
                'npcr': calculate_npcr(reference, other),
                'uaci': calculate_uaci(reference, other),
                'wrong_key_mse': calculate_mse(image.to_array(), wrong.to_array()),
            }
            print(f"  {label}: NPCR {results[label]['npcr']:.4f}%  UACI {results[label]['uaci']:.4f}%  "
                  f"wrong-key MSE {results[label]['wrong_key_mse']:.1f}")
        return results

    def plaintext_sensitivity_analysis(self) -> Dict[str, Dict[str, float]]:
        """Flip one pixel of each image and measure how much of the cipher image changes.

        The chain only carries a change forward, so the changed share depends on
        where the pixel lands after permutation.
        """
        results: Dict[str, Dict[str, float]] = {}
        for name, image in self.test_images.items():
            if image.dim == 0:
                continue
            original = image.to_array()
            modified = original.copy()
            h, w = original.shape[:2]
            modified[h // 2, w // 2] = 255 - modified[h // 2, w // 2]
            changed = Image.from_array(modified, mode=image.mode, format=image.format)
            changed.palette = image.palette

            enc_a = self._encrypted(image, self.key).to_array()
            enc_b = self._encrypted(changed, self.key).to_array()
            results[name] = {
                'npcr': calculate_npcr(enc_a, enc_b),
                'uaci': calculate_uaci(enc_a, enc_b),
            }
            print(f"  {name}: NPCR {results[name]['npcr']:.4f}%  UACI {results[name]['uaci']:.4f}%")
        return results

    def visual_analysis(self) -> Dict[str, str]:
        """Save original and scrambled images with their histograms."""
        name, image = next(iter(self.test_images.items()))
        original = image.to_array()
        encrypted = self._encrypted(image, self.key).to_array()
        cmap = None if _displayable(original).ndim == 3 else 'gray'

        fig, axes = plt.subplots(2, 2, figsize=(10, 10))
        fig.suptitle(f'Visual Analysis: {name}', fontsize=16)

        axes[0, 0].imshow(_displayable(original), cmap=cmap)
        axes[0, 0].set_title('Original Image')
        axes[0, 0].axis('off')

        axes[0, 1].imshow(_displayable(encrypted), cmap=cmap)
        axes[0, 1].set_title('Scrambled Image')
        axes[0, 1].axis('off')

        axes[1, 0].hist(original.flatten(), bins=256, range=(0, 256), alpha=0.7, color='blue')
        axes[1, 0].set_title('Original Histogram')
        axes[1, 0].set_xlabel('Pixel Value')
        axes[1, 0].set_ylabel('Frequency')

        axes[1, 1].hist(encrypted.flatten(), bins=256, range=(0, 256), alpha=0.7, color='red')
        axes[1, 1].set_title('Scrambled Histogram')
        axes[1, 1].set_xlabel('Pixel Value')
        axes[1, 1].set_ylabel('Frequency')

        plt.tight_layout()
        visual_path = os.path.join(self.output_dir, 'visual_analysis.png')
        plt.savefig(visual_path, dpi=150, bbox_inches='tight')
        plt.close(fig)

        print(f"Visual analysis saved to: {visual_path}")
        return {'visual_analysis_path': visual_path}

    def generate_final_report(self, all_results: Dict[str, Any]) -> str:
        print("\nGenerating final report...")
        report_path = os.path.join(self.output_dir, 'scramble_evaluation_report.txt')

        with open(report_path, 'w') as f:
            f.write("KEYED PIXEL SCRAMBLER EVALUATION REPORT\n")
            f.write("=" * 80 + "\n\n")

            f.write("1. SECURITY METRICS ANALYSIS\n")
            f.write("-" * 40 + "\n")
            for name, m in all_results.get('security', {}).items():
                f.write(f"{name}:\n")
                f.write(f"  NPCR: {m['npcr']:.4f}% (Ideal: {OPTIMAL_NPCR}%)\n")
                f.write(f"  UACI: {m['uaci']:.4f}% (Ideal: {OPTIMAL_UACI}%)\n")
                f.write(f"  Entropy: {m['entropy_encrypted']:.4f} (Ideal: {OPTIMAL_ENTROPY})\n")
                f.write(f"  Correlation: {m['correlation_encrypted']:.6f} (Ideal: 0.0)\n")
                f.write(f"  Exact reconstruction: {m['exact']}\n")
                f.write(f"  Encryption Time: {m['enc_time']:.3f} seconds\n")
                f.write(f"  Decryption Time: {m['dec_time']:.3f} seconds\n")
            f.write("\n")

            f.write("2. KEY SENSITIVITY ANALYSIS\n")
            f.write("-" * 40 + "\n")
            for label, m in all_results.get('key_sensitivity', {}).items():
                f.write(f"{label}: NPCR {m['npcr']:.4f}%, UACI {m['uaci']:.4f}%, "
                        f"wrong-key MSE {m['wrong_key_mse']:.1f}\n")
            f.write("\n")

            f.write("3. PLAINTEXT SENSITIVITY ANALYSIS\n")
            f.write("-" * 40 + "\n")
            for name, m in all_results.get('plaintext', {}).items():
                f.write(f"{name}: NPCR {m['npcr']:.4f}%, UACI {m['uaci']:.4f}%\n")
            f.write("\n")

            visual = all_results.get('visual', {})
            if visual:
                f.write("4. VISUAL ANALYSIS\n")
                f.write("-" * 40 + "\n")
                f.write(f"Figure: {visual['visual_analysis_path']}\n")

        print(f"Report saved to: {report_path}")
        return report_path


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description='Keyed pixel scrambler evaluation')
    parser.add_argument('images', nargs='*', help='images to evaluate (default: synthetic test card)')
    parser.add_argument('--output-dir', default='scramble_results',
                        help='Output directory for results')
    parser.add_argument('--key', type=parse_key, default=DEFAULT_KEY,
                        help='scrambling key (unsigned 64-bit integer)')
    args = parser.parse_args(argv)

    try:
        evaluator = ScrambleEvaluation(output_dir=args.output_dir, images=args.images, key=args.key)
    except ValueError as e:
        parser.error(str(e))
    evaluator.run_comprehensive_evaluation()

    print(f"\nAll results saved to: {args.output_dir}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
