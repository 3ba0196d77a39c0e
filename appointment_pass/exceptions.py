"""
Exceptions raised while generating a pass.
"""


class PassGenerationError(Exception):
    """Base class for failures while building a pass bundle"""


class ImageProcessingError(PassGenerationError):
    """Strip image could not be decoded or rendered"""

    def __init__(self, message: str):
        super().__init__(f"Image processing failed: {message}")


class TemplateShapeError(PassGenerationError):
    """The pass.json template does not have a field the projector writes to"""


class PassSigningError(PassGenerationError):
    """The manifest could not be signed"""
