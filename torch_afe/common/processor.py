"""
Chunk Processor Base Class
==========================

Author:
    Stefano Giacomelli - Ph.D. candidate @ DISIM dpt. - University of L'Aquila

License:
    GNU General Public License v3.0 or later (GPLv3+)

Common interface of the stateful processing stages of the front-end. A processor
consumes successive chunks of a signal through :meth:`Processor.process_chunk`,
keeps whatever internal state is needed for the concatenated output to match the
output of a single call on the whole signal, and can be brought back to a clean
state with :meth:`Processor.reset`.

:meth:`Processor.has_parameters` lets an orchestration layer decide whether an
existing processor can be reused for a given parameter set instead of being rebuilt.
"""

import warnings
from typing import Any, Mapping

import torch
import torch.nn as nn


class Processor(nn.Module):
    """
    Base class for chunk-based processing stages.

    Parameters
    ----------
    fs_hz_in : float
        Sampling rate of the input signal in Hz.

    fs_hz_out : float
        Sampling rate of the output representation in Hz.

    type : str
        Human readable descriptor of the processor.

    Notes
    -----
    Processors are not reentrant: a chunk call must not be interleaved with
    another chunk call on the same instance. Instances are meant to be driven by
    a single caller, external synchronization is required otherwise.
    """

    def __init__(self, fs_hz_in: float, fs_hz_out: float, type: str):
        super().__init__()

        if fs_hz_in is None:
            raise ValueError("Sampling frequency needs to be provided")

        self.fs_hz_in = fs_hz_in
        self.fs_hz_out = fs_hz_out
        self.type = type

    def process_chunk(self, x: torch.Tensor) -> torch.Tensor:
        raise NotImplementedError

    def reset(self):
        raise NotImplementedError

    def has_parameters(self, p: Any) -> bool:
        raise NotImplementedError

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        """Alias of :meth:`process_chunk`, so processors compose like any nn.Module."""
        return self.process_chunk(x)

    @staticmethod
    def _lookup(p: Any, name: str, key: str) -> Any:
        """
        Read one candidate parameter for :meth:`has_parameters`.

        ``p`` can be a parameter dataclass (attribute ``name``) or a flat mapping
        (key ``key``). Raises KeyError when the field is missing.
        """
        if isinstance(p, Mapping):
            return p[key]
        try:
            return getattr(p, name)
        except AttributeError as e:
            raise KeyError(key) from e

    @staticmethod
    def _warn_missing(key: str):
        warnings.warn(f"Parameter {key} is missing in input p.")
