"""
torch_afe: PyTorch Auditory Front-End
=====================================

A chunk-based auditory front-end in PyTorch. Signals are pushed through stateful
processing stages in pieces of arbitrary size, and the concatenated output matches
the output obtained on the whole signal at once.

**Key Features:**
    - Stateful Direct Form II Transposed filters, real or complex transfer functions
    - Gammatone filterbank (explicit center frequencies, channel count or ERB spacing)
    - Ratemap extraction (leaky integration + framing) with carry-over buffer
    - Parameter structures and reuse checks (``has_parameters``) for orchestration layers

**Quick Start:**

    >>> import torch
    >>> import torch_afe
    >>>
    >>> fb = torch_afe.GammatoneProcessor(fs=16000, f_low=80, f_high=8000, n_channels=32)
    >>> rm = torch_afe.RatemapProcessor(fs=16000)
    >>>
    >>> x = torch.randn(16000, dtype=torch.float64)
    >>> for chunk in x.split(4000):
    ...     frames = rm.process_chunk(fb.process_chunk(chunk))

**Package Structure:**

    torch_afe/
    ├── models/             # Complete front-ends
    │   └── GammatoneRatemap        - Gammatone filterbank + ratemap
    │
    └── common/             # Reusable building blocks
        ├── filters.py              - Filter engine (FilterSpec, Filter, apply_filter)
        ├── filterbanks.py          - ERB utilities, gammatone design, filterbank
        ├── ratemap.py              - Leaky integration and framing
        ├── parameters.py           - Parameter structures
        └── processor.py            - Chunk processor base class

**Author:**
    Stefano Giacomelli - Ph.D. candidate @ DISIM dpt. - University of L'Aquila

**License:**
    GNU General Public License v3.0 or later (GPLv3+)

**References:**
    - Two!Ears Auditory Front-End: http://twoears.eu/
    - MATLAB Auditory Modeling Toolbox v1.6.0: http://amtoolbox.org/
"""

# ============================================================================
# Package Metadata
# ============================================================================

__version__ = "0.1.0"
__author__ = "Stefano Giacomelli"
__email__ = "stefano.giacomelli@graduate.univaq.it"
__license__ = "GPL-3.0-or-later"
__description__ = "PyTorch Auditory Front-End - Chunk-based stateful auditory processing"

# ============================================================================
# Public API - Front-End Models
# ============================================================================

from torch_afe.models.gammatone_ratemap import GammatoneRatemap

# ============================================================================
# Public API - Common Building Blocks
# ============================================================================

# --- Filter Engine ---
from torch_afe.common.filters import (
    FilterSpec,                         # Immutable transfer function descriptor
    Filter,                             # Stateful filter (nn.Module)
    apply_filter,                       # Functional filtering with explicit state
    leaky_integrator_filter,            # One-pole smoother factory
)

# --- Filterbanks & Frequency Processing ---
from torch_afe.common.filterbanks import (
    audfiltbw,                          # Auditory filter bandwidth
    fc2erb,                             # Frequency to ERB-rate
    erb2fc,                             # ERB-rate to frequency
    erbspace_nchannels,                 # N channels evenly spaced in ERB
    erbspace_step,                      # Channels every n ERBs
    compute_center_frequencies,         # Center frequency resolution
    gammatone_filter,                   # Gammatone filter factory
    GammatoneProcessor,                 # Chunk-based gammatone filterbank
)

# --- Ratemap ---
from torch_afe.common.ratemap import (
    RatemapProcessor,                   # Leaky integration + framing
    frame_count,                        # Frame count of a buffered input
)

# --- Configuration ---
from torch_afe.common.parameters import (
    GammatoneParameters,
    RatemapParameters,
)
from torch_afe.common.processor import Processor

# ============================================================================
# Package-Level Exports
# ============================================================================

__all__ = [
    # Models
    "GammatoneRatemap",

    # Filter engine
    "FilterSpec",
    "Filter",
    "apply_filter",
    "leaky_integrator_filter",

    # Filterbanks
    "audfiltbw",
    "fc2erb",
    "erb2fc",
    "erbspace_nchannels",
    "erbspace_step",
    "compute_center_frequencies",
    "gammatone_filter",
    "GammatoneProcessor",

    # Ratemap
    "RatemapProcessor",
    "frame_count",

    # Configuration
    "GammatoneParameters",
    "RatemapParameters",
    "Processor",
]

# ============================================================================
# Convenience: Group components by category for easier discovery
# ============================================================================

processors = {
    'GammatoneProcessor': GammatoneProcessor,
    'RatemapProcessor': RatemapProcessor,
}
