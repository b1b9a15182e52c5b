"""Pipeline orchestrator: load, pick corners, rectify."""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

import numpy as np

from pagerectify.geometry.points import Quadrilateral, as_quadrilateral, default_corners, scale_corners
from pagerectify.geometry.resample import RectifyConfig, rectify
from pagerectify.preprocessing.loader import ImageMetadata, load_image

logger = logging.getLogger(__name__)


@dataclass
class PipelineConfig:
    """All tunable parameters in one place."""

    # Rectification
    rectify: RectifyConfig = field(default_factory=RectifyConfig)

    # Corners used when the caller supplies none
    corner_padding: float = 20

    # Output
    jpeg_quality: int = 95


@dataclass
class PipelineResult:
    """Result of pipeline processing."""

    output_image: np.ndarray
    metadata: ImageMetadata
    corners: Quadrilateral
    processing_time: float
    steps_completed: List[str]

    @property
    def output_size(self) -> Tuple[int, int]:
        """(width, height) of the rectified image."""
        return self.output_image.shape[1], self.output_image.shape[0]


class Pipeline:
    """Rectifies a photographed page given its four corners."""

    def __init__(self, config: Optional[PipelineConfig] = None) -> None:
        """Initialize pipeline with configuration.

        Args:
            config: Pipeline configuration. If None, uses defaults.
        """
        self.config = config or PipelineConfig()
        self.step_times: dict = {}

    def process(
        self,
        input_path: str,
        corners: Optional[Iterable] = None,
        display_size: Optional[Tuple[float, float]] = None,
        debug_output_dir: Optional[str] = None,
    ) -> PipelineResult:
        """Process a single image.

        Args:
            input_path: Path to input image
            corners: Corners [TL, TR, BR, BL]. If None, uses corners inset by
                config.corner_padding.
            display_size: (width, height) the corners were picked at. If given,
                corners are scaled to the natural image size.
            debug_output_dir: Optional directory for debug output

        Returns:
            PipelineResult with the rectified image

        Raises:
            RectifyError: If the corners are invalid or degenerate
        """
        start_time = time.time()
        steps_completed: List[str] = []
        debug_dir: Optional[Path] = None

        if debug_output_dir:
            debug_dir = Path(debug_output_dir)
            debug_dir.mkdir(parents=True, exist_ok=True)

        logger.info(f"Processing: {input_path}")

        # Step 1: Load image
        step_start = time.time()
        image, metadata = load_image(input_path)
        self.step_times['load'] = time.time() - step_start
        steps_completed.append('load')
        logger.info(f"Load time: {self.step_times['load']:.3f}s")

        # Step 2: Resolve corners in natural image coordinates
        width, height = metadata.original_size
        if corners is None:
            quad = default_corners(width, height, self.config.corner_padding)
            logger.info(f"No corners given, using defaults inset by {self.config.corner_padding}px")
        elif display_size is not None:
            quad = scale_corners(corners, display_size, (width, height))
        else:
            quad = as_quadrilateral(corners)
        steps_completed.append('corners')

        logger.debug(f"Corners: {[(round(p.x, 2), round(p.y, 2)) for p in quad]}")

        if debug_dir:
            from pagerectify.utils.debug import draw_quadrilateral, save_image
            save_image(
                draw_quadrilateral(image, quad),
                debug_dir / "01_corners.jpg",
                "Source with picked corners"
            )

        # Step 3: Rectify
        step_start = time.time()
        output = rectify(image, quad, self.config.rectify)
        self.step_times['rectify'] = time.time() - step_start
        steps_completed.append('rectify')
        logger.info(f"Rectify time: {self.step_times['rectify']:.3f}s")

        if debug_dir:
            from pagerectify.utils.debug import save_image
            save_image(
                output,
                debug_dir / "02_rectified.png",
                f"Rectified {output.shape[1]}x{output.shape[0]}"
            )

        total_time = time.time() - start_time
        logger.info(f"Total processing time: {total_time:.3f}s")

        return PipelineResult(
            output_image=output,
            metadata=metadata,
            corners=quad,
            processing_time=total_time,
            steps_completed=steps_completed,
        )
