from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional


class ImageCompareError(Exception):
    """Base failure raised by the analysis pipeline.

    ``stage`` names the step that failed and is prepended to the message
    every time the error crosses a stage boundary.
    """

    status_code = 500

    def __init__(self, message: str, stage: Optional[str] = None, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.cause = cause

    def __str__(self) -> str:
        if self.stage:
            return f"{self.stage}: {self.message}"
        return self.message


class ValidationError(ImageCompareError):
    status_code = 400


class DecodeError(ImageCompareError):
    pass


class ComputationError(ImageCompareError):
    pass


class ResourceError(ImageCompareError):
    pass


@contextmanager
def stage(name: str) -> Iterator[None]:
    """Tag any failure raised inside the block with ``name``.

    The error kind (and therefore the HTTP status) of an ``ImageCompareError``
    survives the wrap. Anything else becomes a plain ``ImageCompareError``.
    """
    try:
        yield
    except ImageCompareError as exc:
        raise type(exc)(str(exc), stage=name, cause=exc) from exc
    except Exception as exc:
        raise ImageCompareError(str(exc) or exc.__class__.__name__, stage=name, cause=exc) from exc
