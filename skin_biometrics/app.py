import argparse
import asyncio
import json
import logging
import os

import matplotlib.pyplot as plt
import matplotlib.patches as mpatches
import pandas as pd
from tqdm import tqdm

from .config import get_settings, redact_secret
from .models.frame import RasterFrame
from .models.history import InMemoryScanHistoryStore
from .models.skin_metrics import SCORE_FIELDS
from .utils.image_preprocessing import detect_clinical_markers, enhance_for_review
from .utils.quality_gate import validate_frame
from .utils.refinement import HttpRefinementService, ScanRefiner
from .utils.skin_analyzer import SkinAnalyzer
from .utils.stabilization import ConsistencyProtocol

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = ('.png', '.jpg', '.jpeg')

REGION_COLORS = {
    'forehead': 'tab:orange',
    'left_cheek': 'tab:red',
    'right_cheek': 'tab:pink',
    'under_eye': 'tab:purple',
    'nose': 'tab:green',
    'jaw': 'tab:blue',
}


class SkinScanApp:
    """
    Command line front end for skin biometric analysis
    """
    def __init__(self,
                 settings=None,
                 use_refinement=True,
                 strict_quality=False,
                 subject_id='default',
                 history_store=None,
                 cache=None):
        """
        Initialize the skin scan application

        Parameters:
        ----------
        settings : AnalysisSettings, optional
            Runtime settings, read from the environment when omitted
        use_refinement : bool
            Whether to call the refinement service when one is configured
        strict_quality : bool
            Reject frames that fail the quality gate instead of scoring them
        subject_id : str
            History key all processed images are recorded under
        history_store : ScanHistoryStore, optional
            Persistence collaborator (in-memory by default)
        cache : AnalysisCache, optional
            Fingerprint cache shared across processed images
        """
        self.settings = settings or get_settings()
        self.strict_quality = strict_quality
        self.subject_id = subject_id
        self.history_store = history_store or InMemoryScanHistoryStore()

        protocol = ConsistencyProtocol(cache=cache, recency_window_ms=self.settings.recency_window_ms)
        self.analyzer = SkinAnalyzer(protocol=protocol)

        service = None
        if use_refinement and self.settings.refinement_enabled:
            logger.info("Refinement enabled at %s (key %s)", self.settings.refinement_url,
                        redact_secret(self.settings.refinement_api_key))
            service = HttpRefinementService(
                self.settings.refinement_url,
                api_key=self.settings.refinement_api_key or None,
                timeout_seconds=self.settings.refinement_timeout_seconds,
            )
        self.use_refinement = service is not None
        self.refiner = ScanRefiner(
            self.analyzer,
            service=service,
            timeout_seconds=self.settings.refinement_timeout_seconds,
            history_window_ms=self.settings.recency_window_ms,
        )

    def process_image(self, image_path):
        """
        Analyze one image and record it in the subject's history

        Parameters:
        ----------
        image_path : str
            Path to the input image

        Returns:
        -------
        dict
            Analysis results, or None if the image could not be used
        """
        try:
            frame = RasterFrame.from_path(image_path)
        except (OSError, ValueError) as e:
            print(f"Error reading image {image_path}: {e}")
            return None

        quality = validate_frame(frame, localizer=self.analyzer.localizer)
        if not quality.acceptable and self.strict_quality:
            print(f"Rejected {image_path}: {quality.message} ({quality.instruction})")
            return None

        history = self.history_store.load(self.subject_id)

        if self.use_refinement:
            outcome = asyncio.run(self.refiner.refine(frame, history))
            metrics = outcome.metrics
            status = outcome.status.value
        else:
            metrics = self.analyzer.analyze(frame, history)
            status = 'local'

        self.history_store.append(self.subject_id, metrics)

        return {
            'image_path': image_path,
            'frame': frame,
            'quality': quality,
            'metrics': metrics,
            'refinement_status': status,
        }

    def visualize_results(self, results, output_path=None):
        """
        Plot region boxes, clinical markers and the score breakdown

        Parameters:
        ----------
        results : dict
            Results from process_image
        output_path : str, optional
            Save the figure here instead of showing it

        Returns:
        -------
        None
        """
        if results is None:
            print("No results to visualize")
            return

        frame = results['frame']
        metrics = results['metrics']
        bounds, regions = self.analyzer.locate_regions(frame)

        fig, (image_ax, score_ax) = plt.subplots(1, 2, figsize=(15, 7))

        # Review rendering with region boxes
        review = enhance_for_review(frame)
        image_ax.imshow(review.rgb)
        for name, region in regions.items():
            x, y, w, h = region.rect
            if w == 0 or h == 0:
                continue
            image_ax.add_patch(mpatches.Rectangle((x, y), w, h, fill=False, linewidth=1.5,
                                                  edgecolor=REGION_COLORS.get(name, 'white'), label=name))

        # Clinical markers
        markers = detect_clinical_markers(review, bounds)
        for kind, color in (('inflammation', 'red'), ('dark_spot', 'cyan')):
            points = [(m.x, m.y) for m in markers if m.kind == kind]
            if points:
                xs, ys = zip(*points)
                image_ax.scatter(xs, ys, s=4, c=color, alpha=0.6, label=kind)

        if bounds.found:
            image_ax.legend(loc='lower right', fontsize=8)
        image_ax.set_title(f"Quality: {results['quality'].message}")
        image_ax.axis('off')

        # Score breakdown
        names = list(SCORE_FIELDS)
        values = [getattr(metrics, name) for name in names]
        colors = ['tab:green' if v > 80 else 'tab:orange' if v > 60 else 'tab:red' for v in values]
        score_ax.barh(names, values, color=colors)
        score_ax.set_xlim(0, 100)
        score_ax.invert_yaxis()
        score_ax.set_title(f"Overall {metrics.overall_score} ({results['refinement_status']})")

        plt.tight_layout()
        if output_path:
            fig.savefig(output_path)
        else:
            plt.show()
        plt.close(fig)

    def batch_process(self, image_dir, output_dir=None):
        """
        Process all images in a directory as consecutive scans of one subject

        Parameters:
        ----------
        image_dir : str
            Directory containing images to process
        output_dir : str, optional
            Directory to save per-image JSON and the CSV summary

        Returns:
        -------
        list
            List of analysis results for each image
        """
        if output_dir is not None:
            os.makedirs(output_dir, exist_ok=True)

        image_files = sorted(
            os.path.join(image_dir, f) for f in os.listdir(image_dir)
            if f.lower().endswith(IMAGE_EXTENSIONS)
        )

        results_list = []
        for img_path in tqdm(image_files, desc="Scanning", unit="image"):
            results = self.process_image(img_path)
            if results is None:
                continue
            results_list.append(results)

            if output_dir is not None:
                base_name = os.path.splitext(os.path.basename(img_path))[0]
                save_results(results, os.path.join(output_dir, f"{base_name}_metrics.json"))

        if output_dir is not None and results_list:
            summary = summarize(results_list)
            summary.to_csv(os.path.join(output_dir, 'scan_summary.csv'), index=False)

        return results_list


def save_results(results, path):
    payload = results['metrics'].to_payload()
    payload['quality'] = results['quality'].reason_code.value
    payload['refinementStatus'] = results['refinement_status']
    with open(path, 'w') as f:
        json.dump(payload, f, indent=2)


def summarize(results_list):
    """One row per processed image with every score."""
    rows = []
    for results in results_list:
        metrics = results['metrics']
        row = {'image': os.path.basename(results['image_path'])}
        row.update(metrics.scores())
        row['skin_age'] = metrics.skin_age
        row['quality'] = results['quality'].reason_code.value
        row['refinement_status'] = results['refinement_status']
        rows.append(row)
    return pd.DataFrame(rows)


def main(argv=None):
    """Main function to run the application from the command line"""
    parser = argparse.ArgumentParser(description='Skin Biometric Analysis')

    # Input arguments
    parser.add_argument('--image', type=str, help='Path to input image')
    parser.add_argument('--image_dir', type=str, help='Directory of images, processed as one subject')
    parser.add_argument('--output_dir', type=str, help='Directory to save output')

    # Analysis arguments
    parser.add_argument('--subject', type=str, default='default', help='Subject identifier for history')
    parser.add_argument('--no_refine', action='store_true', help='Disable the refinement service')
    parser.add_argument('--strict', action='store_true', help='Skip frames that fail the quality gate')

    # Visualization
    parser.add_argument('--no_vis', action='store_true', help='Disable visualization')

    args = parser.parse_args(argv)

    if args.image is None and args.image_dir is None:
        parser.error('Either --image or --image_dir must be provided')

    settings = get_settings()
    logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO),
                        format='%(asctime)s %(levelname)s %(name)s: %(message)s')

    app = SkinScanApp(
        settings=settings,
        use_refinement=not args.no_refine,
        strict_quality=args.strict,
        subject_id=args.subject,
    )

    # Process single image
    if args.image is not None:
        results = app.process_image(args.image)
        if results is None:
            return 1

        metrics = results['metrics']
        print(f"Overall score: {metrics.overall_score} ({results['refinement_status']})")
        for name in SCORE_FIELDS[:-1]:
            print(f"  {name:<14} {getattr(metrics, name)}")

        if args.output_dir is not None:
            os.makedirs(args.output_dir, exist_ok=True)
            base_name = os.path.splitext(os.path.basename(args.image))[0]
            save_results(results, os.path.join(args.output_dir, f"{base_name}_metrics.json"))
            if not args.no_vis:
                app.visualize_results(results, os.path.join(args.output_dir, f"{base_name}_regions.png"))
        elif not args.no_vis:
            app.visualize_results(results)

    # Process directory of images
    else:
        results_list = app.batch_process(args.image_dir, args.output_dir)
        print(f"Processed {len(results_list)} images.")

    return 0


if __name__ == '__main__':
    raise SystemExit(main())
