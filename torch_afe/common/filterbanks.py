"""
Auditory Filterbanks
====================

Author:
    Stefano Giacomelli - Ph.D. candidate @ DISIM dpt. - University of L'Aquila

License:
    GNU General Public License v3.0 or later (GPLv3+)

This module implements the ERB-scale utilities, the gammatone filter design and
the chunk-based gammatone filterbank of the auditory front-end.

The filterbank is a parallel bank of independent :class:`~torch_afe.common.filters.Filter`
instances, one per frequency channel, each owning its own state. Feeding a signal
chunk by chunk therefore gives the same output as feeding it at once.

References
----------
.. [1] B. R. Glasberg and B. C. J. Moore, "Derivation of auditory filter shapes
       from notched-noise data," *Hearing Research*, vol. 47, no. 1-2,
       pp. 103-138, 1990.

.. [2] R. D. Patterson, I. Nimmo-Smith, J. Holdsworth, and P. Rice, "An efficient
       auditory filterbank based on the gammatone function," in *APU Report 2341*,
       MRC Applied Psychology Unit, Cambridge, UK, 1987.

.. [3] P. Majdak, C. Hollomey, and R. Baumgartner, "AMT 1.x: A toolbox for
       reproducible research in auditory modeling," *Acta Acustica*, vol. 6,
       p. 19, 2022, doi: 10.1051/aacus/2022011.
"""

import math
import warnings
from typing import Any, Callable, Optional, Sequence, Union

import numpy as np
import torch
import torch.nn as nn
from scipy.signal import lfilter

from torch_afe.common.filters import Filter, FilterSpec
from torch_afe.common.parameters import GammatoneParameters
from torch_afe.common.processor import Processor

FloatOrTensor = Union[float, torch.Tensor]

# ------------------------------------------------- Utilities ------------------------------------------------

def audfiltbw(fc: FloatOrTensor) -> FloatOrTensor:
    r"""
    Compute equivalent rectangular bandwidth (ERB) of an auditory filter.

    .. math::
       \text{BW}(f_c) = 24.7 + \frac{f_c}{9.265}

    Parameters
    ----------
    fc : float or torch.Tensor
        Center frequencies in Hz.

    Returns
    -------
    float or torch.Tensor
        Auditory filter bandwidths in Hz. Same shape as input.

    Examples
    --------
    >>> import torch
    >>> audfiltbw(torch.tensor([100.0, 1000.0, 4000.0]))
    tensor([ 35.4933, 132.6331, 456.4323])
    """
    return 24.7 + fc / 9.265


def fc2erb(fc: FloatOrTensor) -> torch.Tensor:
    r"""
    Convert frequency in Hz to ERB-rate scale (Cams).

    .. math::
       \text{ERB-rate} = 9.2645 \cdot \text{sign}(f_c) \cdot \ln(1 + |f_c| \cdot 0.00437)

    Parameters
    ----------
    fc : float or torch.Tensor
        Frequencies in Hz.

    Returns
    -------
    torch.Tensor
        ERB-rate values. Python floats are converted to float64 tensors.

    See Also
    --------
    erb2fc : Inverse transformation.
    """
    fc = torch.as_tensor(fc, dtype=torch.float64) if not isinstance(fc, torch.Tensor) else fc
    return 9.2645 * torch.sign(fc) * torch.log(1.0 + torch.abs(fc) * 0.00437)


def erb2fc(erb: FloatOrTensor) -> torch.Tensor:
    r"""
    Convert ERB-rate scale (Cams) to frequency in Hz.

    .. math::
       f = \frac{\text{sign}(E)}{0.00437} \left( e^{|E| / 9.2645} - 1 \right)

    Parameters
    ----------
    erb : float or torch.Tensor
        ERB-rate values.

    Returns
    -------
    torch.Tensor
        Frequencies in Hz.

    See Also
    --------
    fc2erb : Forward transformation.
    """
    erb = torch.as_tensor(erb, dtype=torch.float64) if not isinstance(erb, torch.Tensor) else erb
    return torch.sign(erb) * (torch.exp(torch.abs(erb) / 9.2645) - 1.0) / 0.00437


def erbspace_nchannels(flow: float, fhigh: float, n_channels: int) -> torch.Tensor:
    """
    Center frequencies of ``n_channels`` channels evenly spaced on the ERB scale.

    Both ``flow`` and ``fhigh`` are included.

    Parameters
    ----------
    flow, fhigh : float
        Frequency range in Hz.

    n_channels : int
        Number of channels.

    Returns
    -------
    torch.Tensor
        Center frequencies in Hz, shape (n_channels,), float64.
    """
    erb_low = fc2erb(float(flow)).item()
    erb_high = fc2erb(float(fhigh)).item()
    erbs = torch.linspace(erb_low, erb_high, int(n_channels), dtype=torch.float64)
    return erb2fc(erbs)


def erbspace_step(flow: float, fhigh: float, n_erbs: float = 1.0) -> torch.Tensor:
    """
    Center frequencies from ``flow`` upwards in steps of ``n_erbs`` ERBs.

    The last channel is the highest one that does not exceed ``fhigh`` (so ``fhigh``
    itself is only included when it lies exactly on the grid).

    Parameters
    ----------
    flow, fhigh : float
        Frequency range in Hz.

    n_erbs : float, optional
        Distance between neighboring channels in ERBs. Default: 1.

    Returns
    -------
    torch.Tensor
        Center frequencies in Hz, float64. Empty if ``fhigh < flow``.
    """
    if n_erbs is None or n_erbs <= 0:
        raise ValueError(f"ERB spacing must be positive, got {n_erbs}")

    erb_low = fc2erb(float(flow)).item()
    erb_high = fc2erb(float(fhigh)).item()

    # Tolerance on the number of steps, as MATLAB's colon operator
    n_steps = math.floor((erb_high - erb_low) / n_erbs + 1e-10)
    if n_steps < 0:
        return torch.zeros(0, dtype=torch.float64)

    erbs = erb_low + torch.arange(n_steps + 1, dtype=torch.float64) * float(n_erbs)
    return erb2fc(erbs)


def compute_center_frequencies(f_low: Optional[float] = None,
                               f_high: Optional[float] = None,
                               n_erbs: Optional[float] = None,
                               n_channels: Optional[int] = None,
                               cf_hz: Optional[Sequence[float]] = None) -> torch.Tensor:
    """
    Resolve the center frequencies of a filterbank.

    Three mutually exclusive descriptions are accepted, in order of priority:

    1. ``cf_hz``: explicit center frequencies, used as is.
    2. ``f_low``, ``f_high`` and ``n_channels``: channels evenly spaced on the ERB scale
       (:func:`erbspace_nchannels`).
    3. ``f_low`` and ``f_high``: channels spaced by ``n_erbs`` ERBs, default 1
       (:func:`erbspace_step`).

    Returns
    -------
    torch.Tensor
        Center frequencies in Hz, float64.

    Raises
    ------
    ValueError
        If none of the descriptions can be satisfied.
    """
    if cf_hz is not None and np.size(cf_hz) > 0:
        return torch.as_tensor(np.asarray(cf_hz, dtype=np.float64).reshape(-1))

    if f_low is not None and f_high is not None and n_channels is not None:
        return erbspace_nchannels(f_low, f_high, n_channels)

    if f_low is not None and f_high is not None:
        return erbspace_step(f_low, f_high, 1.0 if n_erbs is None else n_erbs)

    raise ValueError("Not enough or incoherent input arguments to define the filterbank center frequencies.")

# --------------------------------------------- Filter Design ----------------------------------------------

def gammatone_filter(cf: float,
                     fs: float,
                     ir_type: str = 'FIR',
                     n: int = 4,
                     bw: float = 1.08,
                     b_align: bool = False,
                     dur_sec: float = 0.128) -> Filter:
    r"""
    Design a gammatone filter centered on ``cf``.

    Classic all-pole design: a single complex pole repeated ``n`` times,

    .. math::
        H(z) = \frac{(1 - e^{-\phi})^n}{(1 - \alpha z^{-1})^n}, \qquad
        \alpha = e^{-\phi - j\theta}

    with :math:`\theta = 2\pi f_c / f_s` and :math:`\phi = 2\pi \cdot bw \cdot \text{ERB}(f_c) / f_s`.

    Parameters
    ----------
    cf : float
        Center frequency in Hz.

    fs : float
        Sampling rate in Hz.

    ir_type : {'FIR', 'IIR'}, optional
        - ``'IIR'``: the complex transfer function above (``real_tf=False``, output
          corrected as :math:`2 \cdot \Re(y)`).
        - ``'FIR'`` (default): its real impulse response :math:`2 \cdot \Re(h)` truncated
          to ``dur_sec`` seconds.

    n : int, optional
        Filter order. Default: 4.

    bw : float, optional
        Bandwidth in ERBs. Default: 1.08.

    b_align : bool, optional
        Phase correction / time alignment. Not implemented, no effect.

    dur_sec : float, optional
        Impulse response duration of FIR filters in seconds. Default: 0.128.

    Returns
    -------
    Filter
        Filter instance with zero-initialized state.
    """
    bw_hz = bw * audfiltbw(cf)
    theta = 2.0 * np.pi * cf / fs
    phi = 2.0 * np.pi * bw_hz / fs

    alpha = np.exp(-phi - 1j * theta)
    b_iir = np.array([(1.0 - np.exp(-phi)) ** n])
    a_iir = np.poly(alpha * np.ones(n))

    if ir_type == 'IIR':
        spec = FilterSpec(b=b_iir, a=a_iir, real_tf=False, fs=fs, type='Gammatone filter')
    elif ir_type == 'FIR':
        n_taps = int(round(dur_sec * fs))
        if n_taps < 1:
            raise ValueError(f"Impulse response duration {dur_sec} s is shorter than one sample at fs={fs} Hz")
        impulse = np.zeros(n_taps)
        impulse[0] = 1.0
        ir = 2.0 * np.real(lfilter(b_iir, a_iir, impulse))
        spec = FilterSpec(b=ir, a=[1.0], real_tf=True, fs=fs, type='Gammatone filter')
    else:
        raise ValueError(f"ir_type must be 'FIR' or 'IIR', got '{ir_type}'")

    filt = Filter(spec)
    filt.reset()
    return filt

# ------------------------------------------------ Filterbanks ------------------------------------------------

class GammatoneProcessor(Processor):
    r"""
    Chunk-based gammatone filterbank.

    Splits a single-channel signal into frequency channels with a parallel bank of
    gammatone filters spaced on the ERB scale. Each channel is an independent
    :class:`~torch_afe.common.filters.Filter` with its own state, so consecutive
    calls to :meth:`process_chunk` continue seamlessly from one another.

    Parameters
    ----------
    fs : float
        Sampling rate in Hz.

    f_low, f_high : float, optional
        Lowest / highest center frequency in Hz.

    n_erbs : float, optional
        Distance between neighboring channels in ERBs. Default: 1 (when used).

    n_channels : int, optional
        Number of channels between ``f_low`` and ``f_high``.

    cf_hz : sequence of float, optional
        Explicit center frequencies in Hz.

    ir_type : {'FIR', 'IIR'}, optional
        Impulse response type. Default: ``'FIR'``.

    b_align : bool, optional
        Phase correction and time alignment between channels. Accepted for
        compatibility, not implemented. Default: ``False``.

    n : int, optional
        Filter order. Default: 4.

    bw : float, optional
        Bandwidth in ERBs. Default: 1.08.

    dur_sec : float, optional
        Impulse response duration (FIR only) in seconds. Default: 0.128.

    filter_factory : callable, optional
        Function ``(cf, fs, ir_type, n, bw, b_align, dur_sec) -> Filter`` creating one
        channel. Default: :func:`gammatone_filter`.

    Attributes
    ----------
    cf_hz : torch.Tensor
        Center frequencies in Hz, shape (F,), float64.

    num_channels : int
        Number of channels F.

    n_erbs, n_gamma, bw_erbs, f_low, f_high : float or None
        Parameters used at instantiation.

    fb_decimation : int
        Decimation ratio of the filterbank (always 1).

    filters : nn.ModuleList
        One :class:`Filter` per channel.

    Shape
    -----
    - Input: :math:`(T,)`, or :math:`(T, 1)` / :math:`(1, T)`
    - Output: :math:`(T, F)`

    Examples
    --------
    >>> import torch
    >>> from torch_afe.common.filterbanks import GammatoneProcessor
    >>>
    >>> fb = GammatoneProcessor(fs=16000, f_low=80, f_high=8000, n_channels=16)
    >>> x = torch.randn(16000, dtype=torch.float64)
    >>> y = torch.cat([fb.process_chunk(x[:5000]), fb.process_chunk(x[5000:])])
    >>> y.shape
    torch.Size([16000, 16])

    Notes
    -----
    The center frequencies are resolved by :func:`compute_center_frequencies`:
    explicit ``cf_hz`` first, then ``f_low``/``f_high``/``n_channels``, then
    ``f_low``/``f_high``/``n_erbs``.

    See Also
    --------
    gammatone_filter : Default channel design
    compute_center_frequencies : Center frequency resolution
    """

    def __init__(self,
                 fs: float,
                 f_low: Optional[float] = None,
                 f_high: Optional[float] = None,
                 n_erbs: Optional[float] = None,
                 n_channels: Optional[int] = None,
                 cf_hz: Optional[Sequence[float]] = None,
                 ir_type: str = 'FIR',
                 b_align: bool = False,
                 n: int = 4,
                 bw: float = 1.08,
                 dur_sec: float = 0.128,
                 filter_factory: Callable[..., Filter] = gammatone_filter):
        super().__init__(fs_hz_in=fs, fs_hz_out=fs, type='Gammatone filterbank')

        if ir_type not in ('FIR', 'IIR'):
            raise ValueError(f"ir_type must be 'FIR' or 'IIR', got '{ir_type}'")

        if isinstance(cf_hz, torch.Tensor):
            cf_hz = cf_hz.detach().cpu().numpy()

        cf = compute_center_frequencies(f_low=f_low, f_high=f_high, n_erbs=n_erbs,
                                        n_channels=n_channels, cf_hz=cf_hz)
        if cf.numel() == 0:
            raise ValueError(f"No channel center frequency between {f_low} and {f_high} Hz.")

        if b_align:
            warnings.warn("Time alignment between gammatone channels is not implemented, b_align has no effect.")

        # Default spacing applies only to the ERB-step description
        if (cf_hz is None or np.size(cf_hz) == 0) and n_channels is None and n_erbs is None:
            n_erbs = 1.0

        self.cf_hz = cf
        self.num_channels = cf.numel()
        self.n_erbs = n_erbs
        self.n_gamma = n
        self.bw_erbs = bw
        self.f_low = f_low
        self.f_high = f_high
        self.fb_decimation = 1
        self.ir_type = ir_type
        self.b_align = b_align
        self.dur_sec = dur_sec

        self.filters = nn.ModuleList([filter_factory(cf_i, fs, ir_type, n, bw, b_align, dur_sec)
                                      for cf_i in cf.tolist()])

    @classmethod
    def from_parameters(cls, fs: float, params: Optional[GammatoneParameters] = None, **kwargs) -> 'GammatoneProcessor':
        """Build a filterbank from a :class:`GammatoneParameters` (defaults when None)."""
        p = GammatoneParameters() if params is None else params
        return cls(fs,
                   f_low=p.f_low,
                   f_high=p.f_high,
                   n_erbs=p.n_erbs,
                   n_channels=p.n_channels,
                   cf_hz=p.cf_hz,
                   ir_type=p.ir_type,
                   b_align=p.b_align,
                   n=p.n,
                   bw=p.bw,
                   dur_sec=p.dur_sec,
                   **kwargs)

    def process_chunk(self, x: torch.Tensor) -> torch.Tensor:
        """
        Pass a chunk of single-channel signal through the filterbank.

        Parameters
        ----------
        x : torch.Tensor
            One-dimensional input chunk, shape (T,) (or (T, 1) / (1, T)).

        Returns
        -------
        torch.Tensor
            Filterbank output, shape (T, F).

        Raises
        ------
        ValueError
            If the input has more than one non-singleton dimension.
        """
        if x.ndim > 2 or sum(d > 1 for d in x.shape) > 1:
            raise ValueError(f"The input should be a one-dimensional array, got shape {tuple(x.shape)}")

        x = x.reshape(-1)

        # TODO: phase correction and time alignment across channels (b_align)
        return torch.stack([filt(x) for filt in self.filters], dim=1)

    def reset(self):
        """Reset the internal states of all channels."""
        for filt in self.filters:
            filt.reset()

    def has_parameters(self, p: Any) -> bool:
        """
        Check whether this filterbank matches a parameter set.

        Only the center frequencies (recomputed from the candidate description with
        the same priority rules), the filter order and the bandwidth are compared,
        as the three ways of describing the channel positions all resolve to the
        center frequencies.

        Parameters
        ----------
        p : GammatoneParameters or mapping
            Candidate parameters. Mappings use the ``gt_*`` keys.

        Returns
        -------
        bool
            True if every compared quantity matches exactly. Missing or unreadable
            fields emit a warning and count as a mismatch. Absent ``gt_cfHz``,
            ``gt_nChannels`` and ``gt_nERBs`` keys are read as None.
        """
        def optional(name, key):
            try:
                return self._lookup(p, name, key)
            except KeyError:
                return None

        cf_p = optional('cf_hz', 'gt_cfHz')
        explicit = cf_p is not None and np.size(cf_p) > 0
        try:
            if explicit:
                cf_candidate = compute_center_frequencies(cf_hz=cf_p)
            else:
                cf_candidate = compute_center_frequencies(f_low=self._lookup(p, 'f_low', 'gt_lowFreqHz'),
                                                          f_high=self._lookup(p, 'f_high', 'gt_highFreqHz'),
                                                          n_erbs=optional('n_erbs', 'gt_nERBs'),
                                                          n_channels=optional('n_channels', 'gt_nChannels'))
        except KeyError as e:
            self._warn_missing(e.args[0])
            return False
        except TypeError:
            self._warn_missing('gt_cfHz' if explicit else 'gt_lowFreqHz/gt_highFreqHz/gt_nChannels/gt_nERBs')
            return False
        except ValueError:
            return False

        if cf_candidate.shape != self.cf_hz.shape:
            return False
        if cf_candidate.numel() and torch.max(torch.abs(cf_candidate - self.cf_hz)).item() > 0:
            return False

        for name, key, stored in [('n', 'gt_n', self.n_gamma), ('bw', 'gt_bw', self.bw_erbs)]:
            try:
                value = self._lookup(p, name, key)
                if abs(value - stored) > 0:
                    return False
            except (KeyError, TypeError):
                self._warn_missing(key)
                return False

        return True

    def extra_repr(self) -> str:
        """
        Extra representation string for module printing.

        Returns
        -------
        str
            String containing key module parameters.
        """
        return (f"num_channels={self.num_channels}, fs={self.fs_hz_in}, n={self.n_gamma}, "
                f"bw={self.bw_erbs} ERBs, ir_type={self.ir_type}, "
                f"fc_range=({self.cf_hz[0].item():.1f}, {self.cf_hz[-1].item():.1f}) Hz")
