from dataclasses import replace

from .config import RuntimeConfig, TagLayout
from .facade import TagPipelineFacade
from .params import ConfigurationStore
from .strategies.detect_apriltag import AprilTagDetect, TagFamily
from .strategies.localize_homography import HomographyLocalize


class PipelineFactory:
    @staticmethod
    def from_config(config, logger=None, detector=None):
        """
        Build (detector, store, facade) from a startup config.
        Raises ConfigurationError before any native resource is created.
        A prebuilt detector (anything with configure/detect/release) may be passed in.
        """
        family = TagFamily.parse(config.family)
        layout = TagLayout.from_lists(
            config.tag_ids,
            config.tag_frames,
            config.tag_sizes,
            default_size=config.size,
        )

        detector_cfg = replace(config.detector)
        runtime = RuntimeConfig(
            enabled=config.enabled,
            max_hamming=config.max_hamming,
            profile=config.profile,
            z_up=config.z_up,
        )
        store = ConfigurationStore(detector_cfg, runtime, layout, logger=logger)

        det = detector if detector is not None else AprilTagDetect(family, detector_cfg)
        loc = HomographyLocalize(layout)
        facade = TagPipelineFacade(det, store, localizer=loc, logger=logger)
        return det, store, facade
