"""Abstract base class and result type for completion gateways."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..models import CompletionParams, ErrorClass, Transcript


class ResultStatus(str, Enum):
    # Non-empty assistant text
    REPLY = "reply"
    # The call succeeded but carried no usable text
    EMPTY = "empty"
    # The call failed
    ERROR = "error"


@dataclass
class CompletionResult:
    """
    Unified result from a gateway call.
    Callers switch on `status`, then read either `text` or the error fields.
    """
    status: ResultStatus

    # Assistant reply, stripped (only set when status is REPLY)
    text: Optional[str] = None

    # Error classification (only set when status is ERROR)
    error_class: Optional[ErrorClass] = None

    # Most specific human-readable message available (only set when status is ERROR)
    error_message: Optional[str] = None

    @classmethod
    def from_text(cls, text: Optional[str]) -> "CompletionResult":
        if text:
            return cls(status=ResultStatus.REPLY, text=text)
        return cls(status=ResultStatus.EMPTY)

    @classmethod
    def failure(cls, error_class: ErrorClass, message: str) -> "CompletionResult":
        return cls(
            status=ResultStatus.ERROR,
            error_class=error_class,
            error_message=message,
        )


class BaseGateway(ABC):
    """Common interface that every completion backend must satisfy."""

    name: str

    @abstractmethod
    def complete(
        self,
        transcript: Transcript,
        params: CompletionParams,
    ) -> CompletionResult:
        """
        Send the full transcript and return one assistant reply.

        Parameters
        ----------
        transcript:
            Every turn so far, system primer first.
        params:
            Sampling parameters for this request.

        Returns
        -------
        CompletionResult with status REPLY and text set, EMPTY, or ERROR
        with error_class and error_message set.
        """
        ...
