"""Exception hierarchy for the detection-to-pose pipeline.

ConfigurationError subclasses are raised while building components and abort
startup. FrameProcessingError subclasses abort a single frame; the worker
loop logs them and moves on. DetectorReleasedError means the detector
resource is gone and is never recovered per frame.
"""


class TagPipelineError(Exception):
    pass


class ConfigurationError(TagPipelineError):
    pass


class UnsupportedFamilyError(ConfigurationError):
    def __init__(self, family: str):
        super().__init__(f"Unsupported tag family: {family}")
        self.family = family


class LayoutMismatchError(ConfigurationError):
    pass


class FrameProcessingError(TagPipelineError):
    pass


class InvalidFrameError(FrameProcessingError):
    pass


class SingularIntrinsicsError(FrameProcessingError):
    pass


class DetectorError(FrameProcessingError):
    pass


class DegenerateHomographyError(FrameProcessingError):
    pass


class DetectorReleasedError(TagPipelineError, RuntimeError):
    pass
