"""
Ratemap Extraction
==================

Author:
    Stefano Giacomelli - Ph.D. candidate @ DISIM dpt. - University of L'Aquila

License:
    GNU General Public License v3.0 or later (GPLv3+)

This module implements the ratemap, a map of auditory nerve firing rates
computed from the (inner hair cell) envelope of each filterbank channel. Each
channel is smoothed with a leaky integrator, then reduced over overlapping
windowed frames to one value per frame (average magnitude or average power).

The framing stage keeps the samples that were not consumed by a complete frame
in a carry-over buffer, so that the frames extracted from consecutive chunks are
the frames that would have been extracted from the concatenated signal.

References
----------
.. [1] G. J. Brown and M. Cooke, "Computational auditory scene analysis,"
       *Computer Speech and Language*, vol. 8, no. 4, pp. 297-336, 1994.

.. [2] T. May, S. van de Par, and A. Kohlrausch, "A probabilistic model for robust
       localization based on a binaural auditory front-end," *IEEE Trans. Audio,
       Speech, Lang. Process.*, vol. 19, no. 1, pp. 1-13, 2011.
"""

import math
import warnings
from typing import Any, Mapping, Optional, Union

import torch
import torch.nn as nn
import torch.nn.functional as F
from scipy.signal import get_window

from torch_afe.common.filters import leaky_integrator_filter
from torch_afe.common.parameters import RatemapParameters
from torch_afe.common.processor import Processor

SCALINGS = ('magnitude', 'power')

# ------------------------------------------------- Utilities ------------------------------------------------

def _round(value: float) -> int:
    """Round half away from zero (MATLAB ``round``)."""
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def frame_count(n_samples: int, w_size: int, h_size: int) -> int:
    r"""
    Number of frames extracted from ``n_samples`` buffered samples.

    .. math::
        N_{\text{frames}} = \max\left(\left\lfloor \frac{N - (W - H)}{H} \right\rfloor, 1\right)

    Parameters
    ----------
    n_samples : int
        Number of available samples N.

    w_size : int
        Window length W in samples.

    h_size : int
        Hop length H in samples.

    Returns
    -------
    int
        Number of frames (at least one).

    Examples
    --------
    >>> frame_count(2000, 400, 160)
    11
    """
    return max((n_samples - (w_size - h_size)) // h_size, 1)

# ------------------------------------------------- Ratemap ------------------------------------------------

class RatemapProcessor(Processor):
    r"""
    Chunk-based ratemap extractor.

    Smooths each input channel with a leaky integrator, then extracts overlapping
    frames of ``w_size`` samples every ``h_size`` samples and reduces each windowed
    frame to a scalar:

    - ``'magnitude'``: :math:`r = \frac{1}{W} \sum_n w[n] \, x[n]`
    - ``'power'``: :math:`r = \frac{1}{W} \sum_n (w[n] \, x[n])^2`

    Parameters
    ----------
    fs : float
        Sampling rate of the input in Hz.

    params : RatemapParameters or mapping, optional
        Stage parameters. Mappings use the ``rm_*`` keys. Default:
        ``RatemapParameters()``.

    scaling : {'magnitude', 'power'}, optional
        Overrides ``params.scaling`` when given.

    Attributes
    ----------
    wname : str
        Window shape descriptor.

    w_size_sec, h_size_sec : float
        Window duration and step size in seconds.

    scaling : str
        Frame reduction mode.

    decay_sec : float
        Leaky integrator time constant in seconds.

    w_size : int
        Window length in samples, :math:`2 \cdot \text{round}(w_{sec} f_s / 2)` (even).

    h_size : int
        Hop length in samples, :math:`\text{round}(h_{sec} f_s)`.

    win : torch.Tensor
        Symmetric window of length ``w_size``, float64.

    rm_filters : nn.ModuleList
        One leaky integrator per channel. Empty until the first chunk, as the
        number of channels is only known then.

    buffer : torch.Tensor or None
        Integrated samples not yet consumed by a complete frame, shape (N, C).

    Shape
    -----
    - Input: :math:`(T, C)` or :math:`(T,)` (single channel)
    - Output: :math:`(N_{\text{frames}}, C)`

    Examples
    --------
    >>> import torch
    >>> from torch_afe.common.ratemap import RatemapProcessor
    >>>
    >>> rm = RatemapProcessor(fs=16000)
    >>> env = torch.rand(16000, 32, dtype=torch.float64)
    >>> rm.process_chunk(env).shape
    torch.Size([99, 32])

    Notes
    -----
    **Short inputs:**

    At least one frame is produced per call. When fewer than ``w_size`` samples are
    available the frame is zero-padded to the window length. Calls with no sample at
    all (empty chunk and empty buffer) return no frame.

    **Channel count changes:**

    When the number of channels differs from the previous call, the leaky
    integrators are re-instantiated and the carry-over buffer is dropped, which
    breaks continuity. A warning is emitted.
    """

    def __init__(self,
                 fs: float,
                 params: Optional[Union[RatemapParameters, Mapping[str, Any]]] = None,
                 scaling: Optional[str] = None):
        if fs is None:
            raise ValueError("Sampling frequency needs to be provided")

        if params is None:
            params = RatemapParameters()
        elif isinstance(params, Mapping):
            params = RatemapParameters.from_dict(params)

        scaling = params.scaling if scaling is None else scaling
        if scaling not in SCALINGS:
            raise ValueError(f"Incorrect scaling method for ratemap: '{scaling}'. Choose 'magnitude' or 'power'")

        w_size = 2 * _round(params.w_size_sec * fs / 2)
        h_size = _round(params.h_size_sec * fs)
        if w_size < 2:
            raise ValueError(f"Window of {params.w_size_sec} s is shorter than two samples at fs={fs} Hz")
        if h_size < 1:
            raise ValueError(f"Step size of {params.h_size_sec} s is shorter than one sample at fs={fs} Hz")

        super().__init__(fs_hz_in=fs, fs_hz_out=1.0 / params.h_size_sec, type='Ratemap extractor')

        self.wname = params.wname
        self.w_size_sec = params.w_size_sec
        self.h_size_sec = params.h_size_sec
        self.scaling = scaling
        self.decay_sec = params.decay_sec
        self.w_size = w_size
        self.h_size = h_size

        self.win = torch.from_numpy(get_window(self.wname, self.w_size, fftbins=False))

        # Leaky integrators are instantiated on the first chunk (number of channels unknown here)
        self.rm_filters = nn.ModuleList()
        self.buffer: Optional[torch.Tensor] = None

    def _populate_filters(self, n_channels: int) -> nn.ModuleList:
        return nn.ModuleList([leaky_integrator_filter(self.fs_hz_in, self.decay_sec)
                              for _ in range(n_channels)])

    def process_chunk(self, x: torch.Tensor) -> torch.Tensor:
        """
        Apply the ratemap extractor to a new chunk of input.

        Parameters
        ----------
        x : torch.Tensor
            Input chunk, shape (T, C) or (T,).

        Returns
        -------
        torch.Tensor
            Ratemap frames, shape (N_frames, C).
        """
        if x.ndim == 1:
            x = x.unsqueeze(1)
        elif x.ndim != 2:
            raise ValueError(f"Input must be 1D (T,) or 2D (T, C), got shape {tuple(x.shape)}")

        n_channels = x.shape[1]

        if len(self.rm_filters) == 0:
            self.rm_filters = self._populate_filters(n_channels)
        elif len(self.rm_filters) != n_channels:
            warnings.warn(f"There was a change in number of channels for the ratemap extractor "
                          f"({len(self.rm_filters)} -> {n_channels}). Resetting filters states...")
            self.rm_filters = self._populate_filters(n_channels)
            self.buffer = None

        # Leaky integration, state carried across calls
        y = torch.stack([filt(x[:, ii]) for ii, filt in enumerate(self.rm_filters)], dim=1)

        if self.buffer is not None and self.buffer.shape[0] > 0:
            y = torch.cat([self.buffer.to(dtype=y.dtype).to(device=y.device), y], dim=0)

        n_samples = y.shape[0]
        if n_samples == 0:
            return y.new_zeros(0, n_channels)

        n_frames = frame_count(n_samples, self.w_size, self.h_size)

        # Zero-pad when the forced single frame reaches past the available samples
        n_needed = (n_frames - 1) * self.h_size + self.w_size
        y_frames = F.pad(y.T, (0, n_needed - n_samples)).T if n_needed > n_samples else y

        # (N_frames, C, W)
        frames = y_frames.unfold(0, self.w_size, self.h_size)[:n_frames]
        frames = frames * self.win.to(dtype=y.dtype).to(device=y.device)

        if self.scaling == 'magnitude':
            out = frames.mean(dim=-1)
        else:
            out = frames.pow(2).mean(dim=-1)

        # Samples not consumed by a complete frame are kept for the next call
        self.buffer = y[n_frames * self.h_size:].clone()

        return out

    def reset(self):
        """Reset the leaky integrators and empty the buffer."""
        for filt in self.rm_filters:
            filt.reset()
        self.buffer = None

    def has_parameters(self, p: Any) -> bool:
        """
        Compare the processor parameters with a candidate parameter set.

        Parameters
        ----------
        p : RatemapParameters or mapping
            Candidate parameters. Mappings use the ``rm_*`` keys.

        Returns
        -------
        bool
            True if window name, window duration, hop duration, scaling and decay
            constant all match. Missing or unreadable fields emit a warning and count
            as a mismatch.
        """
        delta = []
        for name, key in RatemapParameters.KEYS.items():
            stored = getattr(self, name)
            try:
                value = self._lookup(p, name, key)
                if isinstance(stored, str):
                    delta.append(float(stored != value))
                else:
                    delta.append(abs(stored - value))
            except (KeyError, TypeError):
                self._warn_missing(key)
                delta.append(1.0)

        return max(delta) == 0

    def extra_repr(self) -> str:
        """
        Extra representation string for module printing.

        Returns
        -------
        str
            String containing key module parameters.
        """
        return (f"fs={self.fs_hz_in}, wname={self.wname}, w_size={self.w_size}, h_size={self.h_size}, "
                f"scaling={self.scaling}, decay_sec={self.decay_sec}")
