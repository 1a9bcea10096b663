"""
Gammatone Ratemap Model
=======================

Author:
    Stefano Giacomelli - Ph.D. candidate @ DISIM dpt. - University of L'Aquila

License:
    GNU General Public License v3.0 or later (GPLv3+)

Fixed two-stage front-end: a gammatone filterbank followed by a ratemap extractor.
Both stages keep their state between calls, so a signal can be processed in
chunks of any size.
"""

from typing import Any, Mapping, Optional

import torch
import torch.nn as nn

from torch_afe.common.filterbanks import GammatoneProcessor
from torch_afe.common.parameters import GammatoneParameters, RatemapParameters
from torch_afe.common.ratemap import RatemapProcessor


class GammatoneRatemap(nn.Module):
    r"""
    Gammatone filterbank + ratemap front-end.

    Parameters
    ----------
    fs : float
        Sampling rate in Hz.

    params : mapping, optional
        Flat parameter mapping with ``gt_*`` and ``rm_*`` keys. Missing keys take
        their default value (see :class:`GammatoneParameters` and
        :class:`RatemapParameters`).

    Attributes
    ----------
    gammatone : GammatoneProcessor
        Filterbank stage.

    ratemap : RatemapProcessor
        Leaky integration and framing stage.

    Shape
    -----
    - Input: :math:`(T,)`
    - Output: :math:`(N_{\text{frames}}, F)`

    Examples
    --------
    >>> import torch
    >>> from torch_afe import GammatoneRatemap
    >>>
    >>> model = GammatoneRatemap(fs=16000, params={'gt_nChannels': 16})
    >>> x = torch.randn(16000, dtype=torch.float64)
    >>> rm = torch.cat([model(x[:8000]), model(x[8000:])])
    >>> rm.shape
    torch.Size([99, 16])
    """

    def __init__(self, fs: float, params: Optional[Mapping[str, Any]] = None):
        super().__init__()

        params = {} if params is None else params

        self.fs = fs
        self.gammatone = GammatoneProcessor.from_parameters(fs, GammatoneParameters.from_dict(params))
        self.ratemap = RatemapProcessor(fs, RatemapParameters.from_dict(params))

    def process_chunk(self, x: torch.Tensor) -> torch.Tensor:
        return self.ratemap.process_chunk(self.gammatone.process_chunk(x))

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return self.process_chunk(x)

    def reset(self):
        self.gammatone.reset()
        self.ratemap.reset()

    def has_parameters(self, p: Mapping[str, Any]) -> bool:
        """True if both stages match the flat parameter mapping ``p``."""
        return (self.gammatone.has_parameters(GammatoneParameters.from_dict(p))
                and self.ratemap.has_parameters(RatemapParameters.from_dict(p)))

    def extra_repr(self) -> str:
        return f"fs={self.fs}, num_channels={self.gammatone.num_channels}, fs_out={self.ratemap.fs_hz_out}"
