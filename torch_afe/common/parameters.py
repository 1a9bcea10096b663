"""
Processor Parameters
====================

Author:
    Stefano Giacomelli - Ph.D. candidate @ DISIM dpt. - University of L'Aquila

License:
    GNU General Public License v3.0 or later (GPLv3+)

Explicit parameter structures for the processing stages. Each structure
enumerates exactly the fields recognized by its stage, with their defaults.

Parameters can also be given as a single flat mapping using the Auditory
Front-End key names (``gt_*`` for the gammatone filterbank, ``rm_*`` for the
ratemap), which is convenient to configure a whole pipeline at once:

>>> from torch_afe.common.parameters import GammatoneParameters, RatemapParameters
>>> p = {'gt_lowFreqHz': 80, 'gt_highFreqHz': 8000, 'gt_nChannels': 32,
...      'rm_scaling': 'magnitude'}
>>> GammatoneParameters.from_dict(p).n_channels
32
>>> RatemapParameters.from_dict(p).scaling
'magnitude'

Unknown keys carrying a stage prefix are rejected at construction time.
"""

from dataclasses import dataclass, fields
from typing import Any, ClassVar, Dict, Mapping, Optional, Sequence, Tuple


def _to_tuple(values: Optional[Sequence[float]]) -> Optional[Tuple[float, ...]]:
    if values is None:
        return None
    if hasattr(values, 'tolist'):
        values = values.tolist()
    if isinstance(values, (int, float)):
        values = [values]
    values = tuple(float(v) for v in values)
    return values if len(values) > 0 else None


class _Parameters:
    """Mixin providing the flat-mapping conversions."""

    PREFIX: ClassVar[str] = ''
    KEYS: ClassVar[Dict[str, str]] = {}

    @classmethod
    def from_dict(cls, p: Mapping[str, Any]):
        """
        Build the parameter structure from a flat mapping.

        Keys of other stages are ignored. Missing keys take their default value.

        Raises
        ------
        ValueError
            If a key with this stage's prefix is not a recognized parameter.
        """
        reverse = {key: name for name, key in cls.KEYS.items()}
        kwargs = {}
        for key, value in p.items():
            if not key.startswith(cls.PREFIX):
                continue
            if key not in reverse:
                raise ValueError(f"Parameter name '{key}' is invalid. Valid names: {sorted(reverse)}")
            kwargs[reverse[key]] = value
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return {self.KEYS[f.name]: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class GammatoneParameters(_Parameters):
    """
    Parameters of the gammatone filterbank.

    Attributes
    ----------
    f_low : float
        Lowest center frequency in Hz. Default: 80.

    f_high : float
        Highest center frequency in Hz. Default: 8000.

    n_erbs : float
        Distance between neighboring channels in ERBs. Default: 1.

    n_channels : int or None
        Number of channels. Takes precedence over ``n_erbs``.

    cf_hz : tuple of float or None
        Explicit center frequencies. Takes precedence over everything else.

    ir_type : {'FIR', 'IIR'}
        Impulse response type of the gammatone filters. Default: ``'FIR'``.

    b_align : bool
        Time alignment / phase correction between channels (accepted, not implemented).

    n : int
        Gammatone filter order. Default: 4.

    bw : float
        Filter bandwidth in ERBs. Default: 1.08.

    dur_sec : float
        Impulse response duration of FIR filters in seconds. Default: 0.128.
    """

    PREFIX: ClassVar[str] = 'gt_'
    KEYS: ClassVar[Dict[str, str]] = {'f_low': 'gt_lowFreqHz',
                                      'f_high': 'gt_highFreqHz',
                                      'n_erbs': 'gt_nERBs',
                                      'n_channels': 'gt_nChannels',
                                      'cf_hz': 'gt_cfHz',
                                      'ir_type': 'gt_type',
                                      'b_align': 'gt_bAlign',
                                      'n': 'gt_n',
                                      'bw': 'gt_bw',
                                      'dur_sec': 'gt_durSec'}

    f_low: Optional[float] = 80.0
    f_high: Optional[float] = 8000.0
    n_erbs: Optional[float] = 1.0
    n_channels: Optional[int] = None
    cf_hz: Optional[Tuple[float, ...]] = None
    ir_type: str = 'FIR'
    b_align: bool = False
    n: int = 4
    bw: float = 1.08
    dur_sec: float = 0.128

    def __post_init__(self):
        object.__setattr__(self, 'cf_hz', _to_tuple(self.cf_hz))
        if self.n_channels is not None:
            object.__setattr__(self, 'n_channels', int(self.n_channels))
        if self.ir_type not in ('FIR', 'IIR'):
            raise ValueError(f"ir_type must be 'FIR' or 'IIR', got '{self.ir_type}'")


@dataclass(frozen=True)
class RatemapParameters(_Parameters):
    """
    Parameters of the ratemap (leaky integration + framing) stage.

    Attributes
    ----------
    wname : str
        Window shape, any name understood by ``scipy.signal.get_window``. Default: ``'hann'``.

    w_size_sec : float
        Window duration in seconds. Default: 0.02.

    h_size_sec : float
        Step between windows in seconds. Default: 0.01.

    scaling : {'magnitude', 'power'}
        Frame reduction. Default: ``'power'``.

    decay_sec : float
        Leaky integrator time constant in seconds. Default: 8 ms.
    """

    PREFIX: ClassVar[str] = 'rm_'
    KEYS: ClassVar[Dict[str, str]] = {'wname': 'rm_wname',
                                      'w_size_sec': 'rm_wSizeSec',
                                      'h_size_sec': 'rm_hSizeSec',
                                      'scaling': 'rm_scaling',
                                      'decay_sec': 'rm_decaySec'}

    wname: str = 'hann'
    w_size_sec: float = 0.02
    h_size_sec: float = 0.01
    scaling: str = 'power'
    decay_sec: float = 8e-3
