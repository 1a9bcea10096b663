"""
Stateful Linear Filtering
=========================

Causal linear filters with persistent internal state for chunk-based
(streaming) processing of audio signals.

Author:
    Stefano Giacomelli - Ph.D. candidate @ DISIM dpt. - University of L'Aquila

License:
    GNU General Public License v3.0 or later (GPLv3+)

Contents
--------

**Filter Description:**
    - `FilterSpec`: Immutable transfer function descriptor (b, a, structure, real/complex flag)

**Filter Execution:**
    - `apply_filter`: Functional Direct Form II Transposed filtering with explicit state
    - `Filter`: nn.Module owning one FilterSpec and its exclusive filter state

**Filter Design:**
    - `leaky_integrator_filter`: One-pole low-pass smoother with exponential decay

Design Philosophy
-----------------
- **Chunk-Invariant**: Filtering a signal in successive chunks gives the same
  output as filtering it at once, as long as the same ``Filter`` instance is reused.
- **Exact**: Recursion runs in double precision through ``scipy.signal.lfilter``,
  which realizes the Direct Form II Transposed structure exactly as MATLAB's ``filter()``.
- **Complex-Aware**: Analytic (complex-valued) designs keep a complex state, and only
  the returned output is corrected as ``2 * real(y)``.

Filtering is performed on CPU in double precision. Inputs may live on any device,
outputs are moved back to the input device and dtype.

See Also
--------
- `torch_afe.common.filterbanks`: Gammatone filter design and filterbank composer
- `torch_afe.common.ratemap`: Leaky integration and framing stage
"""

import math
from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple, Union

import numpy as np
import torch
import torch.nn as nn
from scipy.signal import freqz, lfilter

DF2T = 'Direct-Form II Transposed'

ArrayLike = Union[Sequence[float], Sequence[complex], np.ndarray, torch.Tensor]

# ------------------------------------------------- Utilities ------------------------------------------------

def _as_coefficients(values: ArrayLike) -> np.ndarray:
    """Convert coefficients to a read-only 1D numpy array (float64 or complex128)."""
    if isinstance(values, torch.Tensor):
        values = values.detach().cpu().numpy()
    arr = np.atleast_1d(np.asarray(values))
    if arr.ndim != 1:
        raise ValueError(f"Filter coefficients must be one-dimensional, got shape {arr.shape}")
    if np.iscomplexobj(arr):
        arr = arr.astype(np.complex128)
    else:
        arr = arr.astype(np.float64)
    arr.setflags(write=False)
    return arr


def _as_signal(x: torch.Tensor) -> np.ndarray:
    """Bring a single-channel tensor to a float64 numpy vector on CPU."""
    if x.ndim != 1:
        raise ValueError(f"Filters process one channel at a time, expected a 1D input, got shape {tuple(x.shape)}")
    return x.detach().cpu().numpy().astype(np.float64)


@dataclass(frozen=True, eq=False)
class FilterSpec:
    r"""
    Immutable description of a causal linear filter.

    Parameters
    ----------
    b : array_like
        Numerator coefficients of the transfer function.

    a : array_like
        Denominator coefficients. Normalized at construction so that ``a[0] == 1``
        (``b`` is scaled accordingly).

    real_tf : bool, optional
        True if the transfer function is real-valued. Complex analytic designs
        (e.g. all-pole gammatone filters) set it to False, in which case the filter
        output is corrected as :math:`2 \cdot \Re(y)`. Default: ``True``.

    fs : float, optional
        Sampling frequency in Hz the coefficients were designed for.

    structure : str, optional
        Filter realization. Only ``'Direct-Form II Transposed'`` is supported.

    type : str, optional
        Free-text descriptor of the filter (e.g. ``'Gammatone filter'``).

    Attributes
    ----------
    order : int or None
        :math:`\max(n_b, n_a) - 1`. None when either coefficient sequence is empty.

    Notes
    -----
    Only the structure tag is validated lazily (at filtering time), so that a spec can
    be inspected even when it describes an unsupported realization.
    """

    b: np.ndarray
    a: np.ndarray
    real_tf: bool = True
    fs: Optional[float] = None
    structure: str = DF2T
    type: Optional[str] = field(default=None)

    def __post_init__(self):
        b = _as_coefficients(self.b)
        a = _as_coefficients(self.a)

        if a.size and a[0] == 0:
            raise ValueError("Leading denominator coefficient a[0] must be non-zero")

        if a.size and b.size and a[0] != 1:
            b = b / a[0]
            a = a / a[0]
            b.setflags(write=False)
            a.setflags(write=False)

        if self.real_tf and (np.iscomplexobj(b) or np.iscomplexobj(a)):
            raise ValueError("A filter with complex coefficients cannot be flagged as real-valued (real_tf=True)")

        object.__setattr__(self, 'b', b)
        object.__setattr__(self, 'a', a)

    @property
    def order(self) -> Optional[int]:
        if self.b.size == 0 or self.a.size == 0:
            return None
        return max(self.b.size, self.a.size) - 1

    @property
    def is_complex(self) -> bool:
        """True if any coefficient is complex (the state is then complex too)."""
        return np.iscomplexobj(self.b) or np.iscomplexobj(self.a)

    @property
    def state_dtype(self) -> torch.dtype:
        return torch.complex128 if self.is_complex else torch.float64

    def __repr__(self) -> str:
        return (f"FilterSpec(type={self.type!r}, order={self.order}, real_tf={self.real_tf}, "
                f"fs={self.fs}, structure={self.structure!r})")


def apply_filter(spec: FilterSpec,
                 state: Optional[torch.Tensor],
                 x: torch.Tensor) -> Tuple[torch.Tensor, torch.Tensor]:
    r"""
    Filter one channel of data and return the updated filter state.

    Functional core of the filter engine. Nothing is mutated: the caller owns the
    state and passes the returned ``new_state`` to the next call to obtain a
    continuous output across chunks.

    Parameters
    ----------
    spec : FilterSpec
        Transfer function to apply.

    state : torch.Tensor or None
        Current filter state, shape (order,). None (or an empty tensor) is
        equivalent to a freshly reset, all-zero state.

    x : torch.Tensor
        Input chunk, shape (T,).

    Returns
    -------
    y : torch.Tensor
        Filtered chunk, shape (T,), on the device of ``x``. Real-valued, with the
        dtype of ``x`` when it is a floating point tensor, float64 otherwise.

    new_state : torch.Tensor
        Final filter state, shape (order,), on CPU (float64, or complex128 for
        complex coefficients).

    Raises
    ------
    ValueError
        If the structure is not Direct Form II Transposed, if the order is undefined,
        if ``x`` is not one-dimensional or if a non-empty ``state`` does not match
        the filter order.

    Notes
    -----
    **Direct Form II Transposed:**

    .. math::
        y[n] &= b[0] \cdot x[n] + z[0] \\
        z[i] &= b[i+1] \cdot x[n] - a[i+1] \cdot y[n] + z[i+1], \quad i = 0, \ldots, N-2 \\
        z[N-1] &= b[N] \cdot x[n] - a[N] \cdot y[n]

    where :math:`N` is the filter order and :math:`z` the state vector.

    **Complex-valued transfer functions:**

    When ``spec.real_tf`` is False the recursion runs on complex numbers, the state
    is kept complex (so that continuity across chunks is exact) and only the
    returned output is corrected as :math:`2 \cdot \Re(y)`.
    """
    if spec.structure != DF2T:
        raise ValueError(f"Filter structure '{spec.structure}' is not recognized.")

    order = spec.order
    if order is None:
        raise ValueError("The filter transfer function must have been specified before filtering")

    x_np = _as_signal(x)
    state_dtype = np.complex128 if spec.is_complex else np.float64
    out_dtype = x.dtype if x.is_floating_point() else torch.float64

    if state is None or state.numel() == 0:
        zi = np.zeros(order, dtype=state_dtype)
    elif state.numel() != order:
        raise ValueError(f"Dimension mismatch between the filter coefficients (order {order}) "
                         f"and the filter states (length {state.numel()}).")
    else:
        zi = state.detach().cpu().numpy().reshape(-1).astype(state_dtype)

    if x_np.size == 0:
        # Nothing to filter, state carried over untouched
        return torch.zeros(0, dtype=out_dtype, device=x.device), torch.from_numpy(zi.copy())

    if order == 0:
        # Pure gain, no memory
        y_np = spec.b[0] * x_np
        zf = zi
    else:
        y_np, zf = lfilter(spec.b, spec.a, x_np, zi=zi)

    if not spec.real_tf:
        y_np = 2.0 * np.real(y_np)
    else:
        y_np = np.real(y_np)

    y = torch.from_numpy(np.ascontiguousarray(y_np)).to(dtype=out_dtype).to(device=x.device)
    new_state = torch.from_numpy(np.asarray(zf, dtype=state_dtype).copy())

    return y, new_state

# -------------------------------------------------- Filters ------------------------------------------------

class Filter(nn.Module):
    r"""
    Causal linear filter with persistent state.

    Wraps a :class:`FilterSpec` and exclusively owns the corresponding filter state.
    Each call to :meth:`forward` (or :meth:`filter`) continues from the state left
    by the previous call, so feeding a signal in successive chunks to the same
    instance gives the same output as feeding the whole signal at once.

    Parameters
    ----------
    spec : FilterSpec
        Transfer function description. Shared specs are safe (immutable), the state
        is never shared.

    Attributes
    ----------
    spec : FilterSpec
        Transfer function description.

    order : int or None
        Filter order, derived from the coefficient lengths.

    states : torch.Tensor or None
        Copy of the current state, shape (order,). None until the first call to
        :meth:`forward` or :meth:`reset`.

    Shape
    -----
    - Input: :math:`(T,)` (single channel)
    - Output: :math:`(T,)`

    Examples
    --------
    >>> import torch
    >>> from torch_afe.common.filters import Filter, FilterSpec
    >>>
    >>> filt = Filter(FilterSpec(b=[0.5, 0.5], a=[1.0]))
    >>> x = torch.randn(1000, dtype=torch.float64)
    >>> y = torch.cat([filt(x[:300]), filt(x[300:])])   # chunked
    >>> filt.reset()
    >>> torch.allclose(y, filt(x))
    True

    Notes
    -----
    The state is kept on CPU in double precision, independently of the module's
    device, as it is only consumed by the CPU filtering backend.

    See Also
    --------
    apply_filter : Functional counterpart with explicit state passing
    leaky_integrator_filter : One-pole smoother factory
    """

    def __init__(self, spec: FilterSpec):
        super().__init__()

        if not isinstance(spec, FilterSpec):
            raise TypeError(f"spec must be a FilterSpec, got {type(spec)}")

        self.spec = spec
        self._states: Optional[torch.Tensor] = None

    @classmethod
    def from_coefficients(cls, b: ArrayLike, a: ArrayLike, **kwargs) -> 'Filter':
        """Build a filter directly from ``b``/``a`` (keyword arguments go to FilterSpec)."""
        return cls(FilterSpec(b=b, a=a, **kwargs))

    @property
    def order(self) -> Optional[int]:
        return self.spec.order

    @property
    def real_tf(self) -> bool:
        return self.spec.real_tf

    @property
    def fs(self) -> Optional[float]:
        return self.spec.fs

    @property
    def states(self) -> Optional[torch.Tensor]:
        return None if self._states is None else self._states.clone()

    def reset(self):
        """
        Reset the filter state to zeros.

        Raises
        ------
        ValueError
            If the transfer function is not specified (undefined order).
        """
        if self.order is None:
            raise ValueError("The filter transfer function must have been specified before initializing its states")
        self._states = torch.zeros(self.order, dtype=self.spec.state_dtype)

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        """
        Filter a chunk of single-channel data, updating the internal state.

        Parameters
        ----------
        x : torch.Tensor
            Input chunk, shape (T,).

        Returns
        -------
        torch.Tensor
            Filtered chunk, shape (T,).
        """
        if self._states is None:
            self.reset()

        y, self._states = apply_filter(self.spec, self._states, x)
        return y

    def filter(self, x: torch.Tensor) -> torch.Tensor:
        """Alias of :meth:`forward`."""
        return self.forward(x)

    def frequency_response(self, nfft: Optional[int] = None) -> Tuple[torch.Tensor, torch.Tensor]:
        r"""
        Compute the complex frequency response of the filter.

        Parameters
        ----------
        nfft : int, optional
            Number of frequency points. Default: :math:`2^{\lceil \log_2(0.05 f_s) \rceil}`
            when the sampling frequency is known, 512 otherwise.

        Returns
        -------
        h : torch.Tensor
            Complex frequency response, shape (nfft,).

        f : torch.Tensor
            Frequency vector, shape (nfft,). In Hz when the sampling frequency is
            known, in rad/sample otherwise.

        Notes
        -----
        For complex-valued transfer functions the response is computed from the
        impulse response over ``nfft`` samples, corrected as :math:`2 \cdot \Re(h)`,
        so that it matches the real output produced by :meth:`forward`.

        The filter state is not affected.
        """
        if self.order is None:
            raise ValueError("The filter transfer function must have been specified before computing its response")

        fs = self.spec.fs
        if nfft is None:
            nfft = 2 ** math.ceil(math.log2(fs * 50e-3)) if fs else 512

        if self.spec.real_tf:
            b, a = self.spec.b, self.spec.a
        else:
            impulse = np.zeros(nfft)
            impulse[0] = 1.0
            b, a = 2.0 * np.real(lfilter(self.spec.b, self.spec.a, impulse)), np.ones(1)

        if fs:
            f, h = freqz(b, a, worN=nfft, fs=fs)
        else:
            f, h = freqz(b, a, worN=nfft)

        return torch.from_numpy(h), torch.from_numpy(f)

    def extra_repr(self) -> str:
        """
        Extra representation string for module printing.

        Returns
        -------
        str
            String containing key module parameters.
        """
        return (f"type={self.spec.type}, order={self.order}, real_tf={self.spec.real_tf}, "
                f"fs={self.spec.fs}, structure={self.spec.structure}")

# ---------------------------------------------- Filter Design ----------------------------------------------

def leaky_integrator_filter(fs: float, decay_sec: float) -> Filter:
    r"""
    Create a leaky integrator (one-pole low-pass smoother).

    .. math::
        H(z) = \frac{1 - d}{1 - d z^{-1}}, \qquad d = e^{-1 / (f_s \tau)}

    where :math:`\tau` is the integration time constant. The DC gain is one.

    Parameters
    ----------
    fs : float
        Sampling rate in Hz.

    decay_sec : float
        Integration time constant :math:`\tau` in seconds.

    Returns
    -------
    Filter
        Filter instance with zero-initialized state.

    Raises
    ------
    ValueError
        If ``fs`` or ``decay_sec`` is not strictly positive.
    """
    if fs is None or fs <= 0:
        raise ValueError(f"Sampling frequency must be positive, got {fs}")
    if decay_sec is None or decay_sec <= 0:
        raise ValueError(f"Integration time constant must be positive, got {decay_sec}")

    decay = math.exp(-1.0 / (fs * decay_sec))

    filt = Filter(FilterSpec(b=[1.0 - decay],
                             a=[1.0, -decay],
                             real_tf=True,
                             fs=fs,
                             type='Leaky integrator'))
    filt.reset()
    return filt
